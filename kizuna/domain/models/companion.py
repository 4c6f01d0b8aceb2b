"""
コンパニオンモデル
コンパニオン本体と性格設定を定義

性格設定は境界（ストア・APIからの読み込み時）で一度だけ検証し、
以降の参照箇所では型付きのフィールドとして扱う。
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ...core.exceptions import ValidationError


class CompanionType(Enum):
    """コンパニオンタイプ"""
    NEIGHBOR = "neighbor"       # 隣の女の子
    OFFICE = "office"           # 職場のエリート
    STUDENT = "student"         # 学生
    CUSTOM = "custom"           # カスタム


class PersonalityType(Enum):
    """性格タイプ（フォールバック返信のプールもこれで選ぶ）"""
    GENTLE = "gentle"               # 優しい
    LIVELY = "lively"               # 元気
    INTELLECTUAL = "intellectual"   # 知的
    MYSTERIOUS = "mysterious"       # ミステリアス
    CUTE = "cute"                   # かわいい
    MATURE = "mature"               # 大人


class Gender(Enum):
    FEMALE = "female"
    MALE = "male"
    NONBINARY = "nonbinary"


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list", field=key, value=value)
    return [str(v) for v in value]


@dataclass
class PersonalityConfig:
    """性格設定"""
    type: PersonalityType
    traits: list[str] = field(default_factory=list)
    speaking_style: str = ""
    interests: list[str] = field(default_factory=list)
    gender: Gender | None = None
    age: int | None = None
    hobbies: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    occupation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "traits": self.traits,
            "speakingStyle": self.speaking_style,
            "interests": self.interests,
            "gender": self.gender.value if self.gender else None,
            "age": self.age,
            "hobbies": self.hobbies,
            "skills": self.skills,
            "occupation": self.occupation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersonalityConfig":
        """
        辞書から生成（境界での検証）

        Raises:
            ValidationError: type が未知、または各フィールドの型が不正な場合
        """
        if not isinstance(data, dict):
            raise ValidationError("personality_config must be an object", field="personality_config")

        try:
            personality_type = PersonalityType(data.get("type"))
        except ValueError:
            raise ValidationError(
                f"Unknown personality type: {data.get('type')!r}",
                field="type",
                value=data.get("type"),
            ) from None

        gender = None
        if data.get("gender"):
            try:
                gender = Gender(data["gender"])
            except ValueError:
                raise ValidationError(
                    f"Unknown gender: {data['gender']!r}", field="gender", value=data["gender"]
                ) from None

        age = data.get("age")
        if age is not None and (isinstance(age, bool) or not isinstance(age, int) or age < 0):
            raise ValidationError("age must be a non-negative integer", field="age", value=age)

        return cls(
            type=personality_type,
            traits=_str_list(data, "traits"),
            # 元データはキャメルケース
            speaking_style=str(data.get("speakingStyle", data.get("speaking_style", "")) or ""),
            interests=_str_list(data, "interests"),
            gender=gender,
            age=age,
            hobbies=_str_list(data, "hobbies"),
            skills=_str_list(data, "skills"),
            occupation=data.get("occupation") or None,
        )


@dataclass
class Companion:
    """コンパニオン"""
    id: str
    user_id: str
    name: str
    companion_type: CompanionType
    personality: PersonalityConfig
    background: str | None = None
    intimacy_level: int = 1
    intimacy_points: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "companion_type": self.companion_type.value,
            "personality_config": self.personality.to_dict(),
            "background": self.background,
            "intimacy_level": self.intimacy_level,
            "intimacy_points": self.intimacy_points,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Companion":
        try:
            companion_type = CompanionType(data.get("companion_type", "custom"))
        except ValueError:
            raise ValidationError(
                f"Unknown companion type: {data.get('companion_type')!r}",
                field="companion_type",
                value=data.get("companion_type"),
            ) from None

        return cls(
            id=data["id"],
            user_id=data["user_id"],
            name=data["name"],
            companion_type=companion_type,
            personality=PersonalityConfig.from_dict(data.get("personality_config", {})),
            background=data.get("background"),
            intimacy_level=data.get("intimacy_level", 1),
            intimacy_points=data.get("intimacy_points", 0),
            created_at=datetime.fromisoformat(data.get("created_at", datetime.now().isoformat())),
            updated_at=datetime.fromisoformat(data.get("updated_at", datetime.now().isoformat())),
        )
