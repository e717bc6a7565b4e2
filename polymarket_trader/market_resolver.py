"""
Resolve a human-friendly market reference into order parameters.

A caller names an instrument either by token id directly, or by market
slug plus outcome. Slug lookups hit the Gamma API once per call; nothing
is cached.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from .errors import MarketDataError, ValidationError
from .models import MarketRef, ResolvedMarket

logger = logging.getLogger(__name__)

DEFAULT_TICK_SIZE = "0.01"
VALID_TICK_SIZES = ("0.1", "0.01", "0.001", "0.0001")

# Binary markets list YES first, NO second
OUTCOME_ALIASES = {"YES": 0, "NO": 1}


def normalize_tick_size(value: Any) -> Optional[str]:
    """Canonical string form of a tick size, or None if it is not a valid one."""
    try:
        text = format(Decimal(str(value)).normalize(), "f")
    except (InvalidOperation, ValueError):
        return None
    return text if text in VALID_TICK_SIZES else None


def _parse_list(raw: Any) -> Optional[List[Any]]:
    """Gamma returns some list fields as JSON-encoded strings."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, list) else None
    return None


class MarketResolver:
    """
    Turns (slug, outcome) or token_id into a ResolvedMarket.

    Args:
        market_data: MarketDataClient used for slug lookups
    """

    def __init__(self, market_data):
        self.market_data = market_data

    async def resolve_ref(self, ref: MarketRef) -> ResolvedMarket:
        return await self.resolve(
            market_slug=ref.market_slug,
            outcome=ref.outcome,
            token_id=ref.token_id,
            tick_size=ref.tick_size,
            neg_risk=ref.neg_risk,
        )

    async def resolve(
        self,
        market_slug: Optional[str] = None,
        outcome: Any = None,
        token_id: Optional[str] = None,
        tick_size: Optional[str] = None,
        neg_risk: Optional[bool] = None,
    ) -> ResolvedMarket:
        """
        Resolve market details from a slug or use a direct token id.

        Args:
            market_slug: Gamma market slug
            outcome: "YES"/"NO", an outcome index, or an outcome label
            token_id: CLOB token id (skips the lookup)
            tick_size: Tick size override
            neg_risk: Negative-risk override

        Raises:
            ValidationError: Reference is ambiguous or incomplete
            NotFound: No market with that slug
            MarketDataError: Market payload cannot be interpreted
        """
        has_slug = bool(market_slug)
        has_outcome = outcome is not None and outcome != ""

        if token_id and (has_slug or has_outcome):
            raise ValidationError(
                "Provide either token_id or market_slug + outcome, not both",
                context={"token_id": token_id, "market_slug": market_slug, "outcome": outcome},
            )
        if not token_id and not (has_slug and has_outcome):
            missing = "outcome" if has_slug else "market_slug" if has_outcome else "token_id or market_slug + outcome"
            raise ValidationError(
                f"Either provide token_id directly, or provide both market_slug and outcome (missing {missing})"
            )

        override_tick = None
        if tick_size is not None:
            override_tick = normalize_tick_size(tick_size)
            if override_tick is None:
                raise ValidationError(
                    f"Invalid tick size {tick_size!r}; expected one of {', '.join(VALID_TICK_SIZES)}"
                )

        if token_id:
            return ResolvedMarket(
                token_id=str(token_id),
                tick_size=override_tick or DEFAULT_TICK_SIZE,
                neg_risk=bool(neg_risk) if neg_risk is not None else False,
                input_method="token_id",
            )

        logger.info(f"Fetching market details for: {market_slug}")
        market = await self.market_data.get_market_by_slug(market_slug)

        token_ids = _parse_list(market.get("clobTokenIds"))
        if not token_ids or len(token_ids) < 2:
            raise MarketDataError(
                f"Failed to parse clobTokenIds for market '{market_slug}': {market.get('clobTokenIds')!r}",
                slug=market_slug,
            )
        token_ids = [str(t) for t in token_ids]

        labels = _parse_list(market.get("outcomes")) or []
        index = self._outcome_index(outcome, labels, len(token_ids), market_slug)

        if override_tick:
            resolved_tick = override_tick
        else:
            resolved_tick = normalize_tick_size(market.get("orderPriceMinTickSize"))
            if resolved_tick is None:
                raise MarketDataError(
                    f"Market '{market_slug}' has no usable orderPriceMinTickSize: "
                    f"{market.get('orderPriceMinTickSize')!r}",
                    slug=market_slug,
                )

        if index < len(labels):
            outcome_label = str(labels[index])
        elif index < 2:
            outcome_label = ("YES", "NO")[index]
        else:
            outcome_label = str(index)

        resolved = ResolvedMarket(
            token_id=token_ids[index],
            tick_size=resolved_tick,
            neg_risk=bool(neg_risk) if neg_risk is not None else bool(market.get("negRisk", False)),
            outcome=outcome_label,
            outcome_index=index,
            question=market.get("question"),
            slug=market_slug,
            end_date=market.get("endDate"),
            condition_id=market.get("conditionId"),
            token_ids=tuple(token_ids),
            input_method="market_slug",
        )

        logger.info(f"Market: {resolved.question}")
        logger.info(f"Token ID ({resolved.outcome}): {resolved.token_id}")
        logger.info(f"Tick Size: {resolved.tick_size}, negRisk: {resolved.neg_risk}")
        return resolved

    @staticmethod
    def _outcome_index(outcome: Any, labels: List[Any], count: int, slug: str) -> int:
        if isinstance(outcome, bool):
            raise ValidationError(f"Invalid outcome {outcome!r}")

        if isinstance(outcome, int):
            index = outcome
        else:
            text = str(outcome).strip()
            upper = text.upper()
            lowered = [str(label).lower() for label in labels]
            if upper in OUTCOME_ALIASES:
                index = OUTCOME_ALIASES[upper]
            elif text.lower() in lowered:
                index = lowered.index(text.lower())
            elif text.isdigit():
                index = int(text)
            else:
                choices = ["YES", "NO"] + [str(label) for label in labels]
                raise ValidationError(
                    f"Unknown outcome {outcome!r} for market '{slug}'; expected one of {', '.join(choices)}"
                )

        if not 0 <= index < count:
            raise ValidationError(f"Outcome index {index} out of range for market '{slug}' ({count} outcomes)")
        return index
