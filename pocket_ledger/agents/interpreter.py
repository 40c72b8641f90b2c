"""
Response Interpreter

Turns whatever the model said into exactly one Command.

CRITICAL BOUNDARIES:
- NEVER raises. A reply we cannot make sense of becomes OtherQuestion,
  carrying the user's text and the raw reply so nothing is lost.
- NEVER guesses values. Fields the model left out stay absent; defaults
  (category, quantity) come from the command models, and acceptance is
  the executor's job.

FLOW:
1. Cut the outermost {...} span out of the reply (models love prose)
2. Parse it, with floats as Decimal so prices stay exact
3. Flatten `data` into plain Python values, dropping nulls
4. Decode into the Command variant for the action
"""

import json
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from pocket_ledger.models.commands import (
    Command,
    ExpenseItem,
    GetAbovePrice,
    GetAll,
    GetByCategory,
    InsertMany,
    InsertOne,
    OtherQuestion,
    SearchByName,
    Unrecognized,
)


logger = structlog.get_logger(__name__)


def extract_json_span(text: str) -> Optional[str]:
    """
    Return the substring from the first '{' to the last '}' inclusive,
    or None when there is no such balanced span.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start:end + 1]


def flatten(value: Any) -> Any:
    """
    Convert a parsed JSON value into plain dicts, lists and scalars.

    Nulls are treated as absent: keys holding null are dropped.
    Arrays keep only their object elements, each flattened.
    """
    if isinstance(value, dict):
        return {
            key: flatten(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, list):
        return [flatten(item) for item in value if isinstance(item, dict)]
    return value


def _insert_one(data: dict) -> Command:
    return InsertOne(item=ExpenseItem.model_validate(data))


def _batch_item(data: dict) -> ExpenseItem:
    """
    Decode one batch item on its own.

    An item that does not decode is kept as a rejected item (its name if
    there is one, no price) so the executor reports it under `failed`
    instead of the whole batch being lost.
    """
    try:
        return ExpenseItem.model_validate(data)
    except ValidationError as e:
        name = data.get("itemName")
        logger.info(
            "batch_item_undecodable",
            item_name=name,
            error_count=e.error_count(),
        )
        return ExpenseItem(item_name=name if isinstance(name, str) else None)


def _insert_many(data: dict) -> Command:
    items = data.get("items")
    if not isinstance(items, list):
        items = []
    return InsertMany(items=[_batch_item(item) for item in items])


def _other_question(original_user_text: str, raw_text: str) -> Command:
    return OtherQuestion(original_question=original_user_text, raw_model_text=raw_text)


# action -> builder(data, original_user_text, raw_text)
_DECODERS: dict[str, Callable[[dict, str, str], Command]] = {
    "insert_expense": lambda data, _q, _r: _insert_one(data),
    "insert_multiple_expenses": lambda data, _q, _r: _insert_many(data),
    "get_all_expenses": lambda _d, _q, _r: GetAll(),
    "get_expenses_by_category": lambda data, _q, _r: GetByCategory.model_validate(data),
    "get_expenses_above_price": lambda data, _q, _r: GetAbovePrice.model_validate(data),
    "search_expenses_by_name": lambda data, _q, _r: SearchByName.model_validate(data),
    "other_question": lambda _d, q, r: _other_question(q, r),
}


def _read_action(document: dict) -> str:
    action = document.get("action")
    if action is None:
        return ""
    return str(action).strip().lower()


def interpret(raw_text: str, original_user_text: str) -> Command:
    """
    Decode a model reply into a Command.

    Args:
        raw_text: The model's complete reply, exactly as generated
        original_user_text: What the user typed, kept for the fallback

    Returns:
        The matching Command variant; OtherQuestion when the reply
        cannot be parsed or decoded; Unrecognized when the action is
        blank or not one we know.
    """
    fallback = _other_question(original_user_text, raw_text)

    span = extract_json_span(raw_text)
    if span is None:
        logger.info("interpretation_no_json", reply_length=len(raw_text))
        return fallback

    try:
        document = json.loads(span, parse_float=Decimal)
    except (ValueError, RecursionError) as e:
        logger.info("interpretation_parse_failed", error=str(e))
        return fallback

    if not isinstance(document, dict):
        logger.info("interpretation_not_an_object", json_type=type(document).__name__)
        return fallback

    action = _read_action(document)
    data = document.get("data")
    try:
        data = flatten(data) if isinstance(data, dict) else {}
    except RecursionError:
        logger.info("interpretation_too_deep", action=action)
        return fallback

    decoder = _DECODERS.get(action)
    if decoder is None:
        logger.info("interpretation_unknown_action", action=action)
        return Unrecognized(raw_model_text=raw_text, action=action or None)

    try:
        command = decoder(data, original_user_text, raw_text)
    except ValidationError as e:
        logger.info(
            "interpretation_decode_failed",
            action=action,
            error_count=e.error_count(),
        )
        return fallback
    except RecursionError:
        logger.info("interpretation_too_deep", action=action)
        return fallback

    logger.debug("response_interpreted", action=action, kind=command.kind)
    return command
