"""
コンテンツ審査サービス
禁止語リストによる入力メッセージの判定（状態を持たない純粋関数）
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

# カテゴリ別の禁止語
DEFAULT_DENYLIST: dict[str, tuple[str, ...]] = {
    "politics": ("政治", "颠覆政权", "反动"),
    "violence": ("暴力", "杀人", "恐怖袭击"),
    "gambling": ("赌博", "赌场", "博彩"),
    "drugs": ("毒品", "冰毒", "海洛因"),
    "explicit": ("色情", "裸聊", "援交"),
}

# コンストラクタで追加されたカテゴリ不明の語
CUSTOM_CATEGORY = "custom"


@dataclass(frozen=True)
class ModerationResult:
    """審査結果"""
    accepted: bool
    category: str | None = None
    term: str | None = None

    @classmethod
    def ok(cls) -> "ModerationResult":
        return cls(accepted=True)


class ModerationGate:
    """
    コンテンツ審査ゲート

    小文字化したテキストに禁止語が1つでも含まれれば拒否する。
    拒否は通常の否定結果であり、例外は送出しない。
    """

    def __init__(
        self,
        denylist: Mapping[str, Iterable[str]] | None = None,
        extra_terms: Iterable[str] | None = None,
    ):
        source = DEFAULT_DENYLIST if denylist is None else denylist
        self._terms: list[tuple[str, str]] = [
            (category, term.lower())
            for category, terms in source.items()
            for term in terms
            if term
        ]
        if extra_terms:
            self._terms.extend((CUSTOM_CATEGORY, t.lower()) for t in extra_terms if t)

    def check(self, text: str) -> ModerationResult:
        """テキストを審査"""
        lowered = text.lower()
        for category, term in self._terms:
            if term in lowered:
                return ModerationResult(accepted=False, category=category, term=term)
        return ModerationResult.ok()
