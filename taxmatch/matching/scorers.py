"""Factor scorers for provider matching.

Each scorer is a pure function of (candidate, criteria) that returns a
FactorResult with a 0-100 score and a justification shown to the client.
Scorers never mutate their inputs and keep no state between calls.
"""

import re

from taxmatch.config import (
    AVERAGE_CLIENT_REVENUE,
    EXPERIENCE_FLOOR_SCORE,
    EXPERIENCE_LADDER,
    REVENUE_SIMILARITY_RATIO,
    SAME_SCALE_BONUS,
)
from taxmatch.schemas.candidate import Candidate, CandidateSpecialty
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.match import FactorResult, FactorType
from taxmatch.utils import format_price

NEUTRAL_SCORE = 50.0

# Specialty scoring
DIRECT_MATCH_SCORE = 70
DIRECT_EXPERIENCE_MULTIPLIER = 3
DIRECT_EXPERIENCE_CAP = 30
RELATED_MATCH_SCORE = 40
NEED_MATCH_SCORE = 10

# Business-type token -> specialties that serve it well
RELATED_SPECIALTIES: dict[str, tuple[str, ...]] = {
    "it": ("個人事業主", "スタートアップ", "フリーランス"),
    "ec": ("小売", "retail", "個人事業主"),
    "飲食": ("個人事業主", "サービス業"),
    "不動産": ("法人税務", "相続"),
}

# Prefecture (without 都/道/府/県) -> neighbouring prefectures
NEARBY_PREFECTURES: dict[str, tuple[str, ...]] = {
    "東京": ("神奈川", "埼玉", "千葉"),
    "神奈川": ("東京", "静岡"),
    "埼玉": ("東京", "千葉"),
    "千葉": ("東京", "埼玉"),
    "大阪": ("京都", "兵庫", "奈良"),
    "愛知": ("岐阜", "三重", "静岡"),
}

EXPERIENCE_LABELS = {
    20: "豊富な実務経験",
    15: "十分な実務経験",
    10: "確かな実務経験",
    5: "実務経験",
    3: "基本的な実務経験",
}

_TOKEN_SEPARATORS = re.compile(r"[・/／、,，\s]+")
_PREFECTURE_SUFFIX = re.compile(r"[都道府県]$")


def _clamp(score: float) -> float:
    return max(0.0, min(float(score), 100.0))


def _business_tokens(business_type: str) -> list[str]:
    """Split a business type like 'ec・小売' into matchable tokens."""
    return [token for token in _TOKEN_SEPARATORS.split(business_type) if len(token) >= 2]


def _is_direct_match(specialty_name: str, business_type: str) -> bool:
    """Check direct specialty match. Both arguments must be lower-cased."""
    if specialty_name in business_type or business_type in specialty_name:
        return True
    return any(token in specialty_name for token in _business_tokens(business_type))


def _is_related_match(specialty_name: str, business_type: str) -> bool:
    """Check the related-specialty table. Both arguments must be lower-cased."""
    for key, related in RELATED_SPECIALTIES.items():
        if key in business_type and any(value in specialty_name for value in related):
            return True
    return False


def _prefecture_key(name: str) -> str:
    return _PREFECTURE_SUFFIX.sub("", name)


def _matched_needs(
    specialties: tuple[CandidateSpecialty, ...],
    needs: frozenset[str] | None,
) -> list[str]:
    if not needs:
        return []
    names = [s.name.lower() for s in specialties]
    return sorted(need for need in needs if any(need.lower() in name for name in names))


def score_specialty(candidate: Candidate, criteria: MatchingCriteria) -> FactorResult:
    """Score how well the candidate's specialties fit the client's business.

    Direct matches score 70 plus up to 30 points of experience bonus.
    Related matches score 40 and only apply when nothing matched directly.
    Each requested need found in a specialty name adds 10 points.

    Args:
        candidate: Provider snapshot.
        criteria: Client preferences.

    Returns:
        FactorResult with score 0 when no business type was given.
    """
    if not criteria.business_type:
        return FactorResult(
            type=FactorType.SPECIALTY,
            score=0.0,
            description="業種の指定なし",
            neutral=True,
        )

    business_type = criteria.business_type.strip().lower()
    score = 0.0
    description = None

    direct = [
        s for s in candidate.specialties if _is_direct_match(s.name.lower(), business_type)
    ]
    if direct:
        avg_years = sum(s.years_of_experience for s in direct) / len(direct)
        score += DIRECT_MATCH_SCORE
        score += min(avg_years * DIRECT_EXPERIENCE_MULTIPLIER, DIRECT_EXPERIENCE_CAP)
        best = max(direct, key=lambda s: s.years_of_experience)
        description = f"{best.name}の専門知識（{best.years_of_experience}年の経験）"
    else:
        related = [
            s for s in candidate.specialties if _is_related_match(s.name.lower(), business_type)
        ]
        if related:
            score += RELATED_MATCH_SCORE
            description = f"関連分野（{related[0].name}）の経験"

    matched_needs = _matched_needs(candidate.specialties, criteria.needs)
    score += NEED_MATCH_SCORE * len(matched_needs)

    if description is None:
        if matched_needs:
            description = f"ご要望（{'、'.join(matched_needs)}）に対応可能"
        else:
            description = "該当する専門分野なし"

    return FactorResult(type=FactorType.SPECIALTY, score=_clamp(score), description=description)


def score_budget(candidate: Candidate, criteria: MatchingCriteria) -> FactorResult:
    """Score the candidate's cheapest active plan against the client's budget."""
    if criteria.budget is None or not candidate.pricing_tiers:
        return FactorResult(
            type=FactorType.BUDGET,
            score=NEUTRAL_SCORE,
            description="料金プランあり",
            neutral=True,
        )

    budget = criteria.budget
    min_price = min(tier.base_price for tier in candidate.pricing_tiers)
    price = format_price(min_price)

    if min_price <= budget:
        if min_price <= budget * 0.8:
            score, description = 100.0, f"予算内のお得なプラン（{price}）"
        else:
            score, description = 85.0, f"予算内のプラン（{price}）"
    else:
        # Zero budget with any positive price is as far off as it gets
        diff = (min_price - budget) / budget if budget > 0 else float("inf")
        if diff <= 0.2:
            score, description = 65.0, f"柔軟な料金設定（{price}）"
        elif diff <= 0.5:
            score, description = 40.0, f"相談可能な料金設定（{price}）"
        else:
            score, description = 20.0, f"プレミアムサービス（{price}）"

    return FactorResult(type=FactorType.BUDGET, score=score, description=description)


def score_location(candidate: Candidate, criteria: MatchingCriteria) -> FactorResult:
    """Score geographic proximity between the client and the candidate's office."""
    if not criteria.location or not candidate.prefecture:
        return FactorResult(
            type=FactorType.LOCATION,
            score=NEUTRAL_SCORE,
            description="地域密着型サービス",
            neutral=True,
        )

    location = criteria.location.strip().lower()
    prefecture = candidate.prefecture.strip().lower()
    city = (candidate.city or "").strip().lower()

    if location == prefecture or (city and location == city):
        return FactorResult(
            type=FactorType.LOCATION,
            score=100.0,
            description=f"地元密着（{candidate.prefecture}）",
        )

    if (
        prefecture in location
        or location in prefecture
        or (city and (city in location or location in city))
    ):
        return FactorResult(
            type=FactorType.LOCATION,
            score=90.0,
            description=f"同じ地域でサービス提供（{candidate.prefecture}）",
        )

    nearby = NEARBY_PREFECTURES.get(_prefecture_key(location), ())
    if _prefecture_key(prefecture) in nearby:
        return FactorResult(
            type=FactorType.LOCATION,
            score=70.0,
            description=f"近隣地域（{candidate.prefecture}）でサービス提供",
        )

    return FactorResult(type=FactorType.LOCATION, score=30.0, description="リモート対応可能")


def score_experience(candidate: Candidate, criteria: MatchingCriteria) -> FactorResult:
    """Score years in practice, with a bonus for serving clients of similar size."""
    years = candidate.years_of_experience
    score = float(EXPERIENCE_FLOOR_SCORE)
    description = "新しい視点でのサービス提供"

    for min_years, bucket_score in EXPERIENCE_LADDER:
        if years >= min_years:
            score = float(bucket_score)
            description = f"{EXPERIENCE_LABELS.get(min_years, '実務経験')}（{years}年）"
            break

    if criteria.revenue is not None and AVERAGE_CLIENT_REVENUE > 0:
        revenue_diff = abs(criteria.revenue - AVERAGE_CLIENT_REVENUE) / AVERAGE_CLIENT_REVENUE
        if revenue_diff <= REVENUE_SIMILARITY_RATIO:
            score += SAME_SCALE_BONUS
            description += "（同規模企業の経験豊富）"

    return FactorResult(type=FactorType.EXPERIENCE, score=_clamp(score), description=description)


def score_rating(candidate: Candidate, criteria: MatchingCriteria) -> FactorResult:
    """Score the candidate's review rating, rewarding a larger review base."""
    if candidate.average_rating is None or candidate.total_reviews == 0:
        return FactorResult(
            type=FactorType.RATING,
            score=NEUTRAL_SCORE,
            description="サービス提供中",
            neutral=True,
        )

    rating = candidate.average_rating
    reviews = candidate.total_reviews

    if reviews >= 50:
        review_bonus = 10
    elif reviews >= 20:
        review_bonus = 5
    else:
        review_bonus = 0

    if rating >= 4.8:
        label = "最高評価"
    elif rating >= 4.5:
        label = "高評価"
    elif rating >= 4.0:
        label = "好評価"
    else:
        label = "実績あり"

    return FactorResult(
        type=FactorType.RATING,
        score=_clamp(rating * 20 + review_bonus),
        description=f"{label}（{rating}★、{reviews}件のレビュー）",
    )


# Evaluation order; reasons with equal scores keep this order
SCORERS = (
    score_specialty,
    score_budget,
    score_location,
    score_experience,
    score_rating,
)
