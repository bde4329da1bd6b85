"""Section weight profiles for the composite ranking strategy."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat

_WEIGHT_ORDER = ("freshness", "velocity", "engagement", "source_trust", "diversity", "locale")


class SectionWeightProfile(BaseModel):
    """Six non-negative weights used by the composite score.

    Normalization is not enforced; operators may override per section.
    """

    model_config = ConfigDict(frozen=True)

    freshness: NonNegativeFloat = Field(0.30, description="w_f")
    velocity: NonNegativeFloat = Field(0.20, description="w_v")
    engagement: NonNegativeFloat = Field(0.10, description="w_e")
    source_trust: NonNegativeFloat = Field(0.30, description="w_s")
    diversity: NonNegativeFloat = Field(0.05, description="w_d")
    locale: NonNegativeFloat = Field(0.05, description="w_l")

    @classmethod
    def parse(cls, value: Any) -> "SectionWeightProfile":
        """Accept a profile, a mapping, or the compact ``"f,v,e,s,d,l"`` form."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",")]
            if len(parts) != len(_WEIGHT_ORDER):
                raise ValueError(f"가중치는 6개여야 합니다: {value!r}")
            try:
                numbers = [float(p) for p in parts]
            except ValueError as exc:
                raise ValueError(f"가중치 파싱 실패: {value!r}") from exc
            return cls(**dict(zip(_WEIGHT_ORDER, numbers)))
        if isinstance(value, Mapping):
            return cls(**value)
        raise ValueError(f"지원하지 않는 가중치 형식: {type(value).__name__}")

    def as_compact(self) -> str:
        return ",".join(f"{getattr(self, name):g}" for name in _WEIGHT_ORDER)


DEFAULT_PROFILES: Dict[str, SectionWeightProfile] = {
    "buzz": SectionWeightProfile.parse("0.25,0.40,0.15,0.10,0.05,0.05"),
    "world": SectionWeightProfile.parse("0.35,0.15,0.10,0.30,0.05,0.05"),
    "korea": SectionWeightProfile.parse("0.30,0.20,0.10,0.30,0.05,0.05"),
    "japan": SectionWeightProfile.parse("0.30,0.20,0.10,0.30,0.05,0.05"),
    "business": SectionWeightProfile.parse("0.25,0.20,0.20,0.30,0.03,0.02"),
    "tech": SectionWeightProfile.parse("0.20,0.40,0.20,0.15,0.03,0.02"),
}
