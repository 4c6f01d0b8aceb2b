"""
OpenAI互換AIアダプター
OpenAI互換のチャットAPI (DeepSeek等) への接続実装
"""

import aiohttp

from ...core.exceptions import GenerationError
from ...domain.ports.ai_port import ChatTurn, IAIProvider


class OpenAICompatibleAdapter(IAIProvider):
    """
    OpenAI互換AIアダプター

    /chat/completions エンドポイントで返信を生成。
    DeepSeek の deepseek-chat をデフォルトモデルとして使用。
    """

    def __init__(
        self,
        api_key: str,
        model: str = "deepseek-chat",
        timeout: int = 60,
        base_url: str = "https://api.deepseek.com/v1",
        temperature: float = 0.8,
        max_tokens: int = 500,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(
        self,
        system_prompt: str,
        history: list[ChatTurn],
        message: str,
    ) -> str:
        """
        返信を生成

        Raises:
            GenerationError: API呼び出し失敗、または応答が不正・空の場合
        """
        messages = [{"role": "system", "content": system_prompt}]
        for turn in history:
            messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": message})

        return await self._call_api(messages, self.max_tokens)

    async def _call_api(self, messages: list[dict[str, str]], max_tokens: int) -> str:
        """チャットAPIを呼び出し"""
        request_body = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": max_tokens,
            "top_p": 0.9,
            "frequency_penalty": 0.1,
            "presence_penalty": 0.1,
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=request_body,
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise GenerationError(
                            f"Chat API error: HTTP {response.status} - {error_text}",
                            service_name=self.model,
                            status_code=response.status,
                        )

                    response_data = await response.json()
        except aiohttp.ClientError as e:
            raise GenerationError(f"Chat API transport error: {e}", service_name=self.model) from e

        choices = response_data.get("choices") if isinstance(response_data, dict) else None
        if not choices:
            raise GenerationError("No choices in chat API response", service_name=self.model)

        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise GenerationError("Empty response from chat API", service_name=self.model)

        return content.strip()

    async def health_check(self) -> bool:
        """
        APIの健全性チェック

        Returns:
            bool: 正常に動作しているか
        """
        try:
            response = await self._call_api(
                [
                    {"role": "system", "content": "Reply with 'OK' only."},
                    {"role": "user", "content": "Hello"},
                ],
                max_tokens=10,
            )
            return len(response) > 0
        except GenerationError:
            return False

    @property
    def model_name(self) -> str:
        """使用中のモデル名"""
        return self.model
