"""
Command Models

The closed set of things a model reply can mean. The interpreter decodes
the reply's JSON straight into one of these; nothing downstream ever sees
a raw dict.

Field names follow Python conventions; the wire names the model is asked
to produce (itemName, pricePerUnit, ...) are accepted as aliases.
"""

from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CommandBase(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )


class ExpenseItem(_CommandBase):
    """
    One item as described by the model.

    Name and price are optional here on purpose: whether an item is
    acceptable is the executor's decision, reported per item.
    """

    item_name: Optional[str] = Field(default=None, alias="itemName")
    category: Optional[str] = Field(
        default=None,
        description="None means not given; the executor applies the default"
    )
    quantity: int = Field(default=1)
    price_per_unit: Optional[Decimal] = Field(default=None, alias="pricePerUnit")

    @field_validator('category', mode='before')
    @classmethod
    def blank_category_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class InsertOne(_CommandBase):
    kind: Literal["insert_one"] = "insert_one"
    item: ExpenseItem


class InsertMany(_CommandBase):
    kind: Literal["insert_many"] = "insert_many"
    items: list[ExpenseItem] = Field(default_factory=list)


class GetAll(_CommandBase):
    kind: Literal["get_all"] = "get_all"


class GetByCategory(_CommandBase):
    kind: Literal["get_by_category"] = "get_by_category"
    category: Optional[str] = None


class GetAbovePrice(_CommandBase):
    kind: Literal["get_above_price"] = "get_above_price"
    min_price: Optional[Decimal] = Field(default=None, alias="minPrice")


class SearchByName(_CommandBase):
    kind: Literal["search_by_name"] = "search_by_name"
    query: Optional[str] = Field(default=None, alias="nameQuery")


class OtherQuestion(_CommandBase):
    """Anything that is not a ledger operation, including unparseable replies."""
    kind: Literal["other_question"] = "other_question"
    original_question: str
    raw_model_text: str


class Unrecognized(_CommandBase):
    """A well-formed reply whose action is blank or not in the schema."""
    kind: Literal["unrecognized"] = "unrecognized"
    raw_model_text: str
    action: Optional[str] = None


Command = Annotated[
    Union[
        InsertOne,
        InsertMany,
        GetAll,
        GetByCategory,
        GetAbovePrice,
        SearchByName,
        OtherQuestion,
        Unrecognized,
    ],
    Field(discriminator="kind"),
]
