"""
Prompt Compiler

Builds the single instruction prompt that asks the model to translate a
user's sentence into one JSON command. The model is a TRANSLATOR here:
it only picks an action and fills in fields, it never decides anything
about the ledger itself.
"""

ACTIONS = (
    "insert_expense",
    "insert_multiple_expenses",
    "get_all_expenses",
    "get_expenses_by_category",
    "get_expenses_above_price",
    "search_expenses_by_name",
    "other_question",
)

_PROMPT_HEAD = """System: You are a financial data processing assistant.
The user can tell you to insert multiple products in one sentence. If multiple products are detected, please return them as a JSON Array under the "items" key, and set the "action" to "insert_multiple_expenses".
Your task is to understand the user's request about their expenses and convert it into a structured JSON command.
The JSON command should have two main keys: "action" and "data".

Possible "action" values are:
- "insert_expense": When the user wants to add a new expense.
- "get_all_expenses": When the user wants to see all expenses.
- "get_expenses_by_category": When the user filters by category.
- "get_expenses_above_price": When the user filters by a minimum price.
- "search_expenses_by_name": When the user searches for expenses by name.
- "insert_multiple_expenses": When the user wants to add multiple expenses at once.
- "other_question": For any other query not directly related to the above actions.

For "insert_expense", the "data" object must contain:
- "itemName": String (e.g., "mangoes", "coffee")
- "category": String (e.g., "Groceries", "Beverages", "Utilities". If not specified, use "General")
- "quantity": Integer (e.g., 3, 1. If not specified, assume 1)
- "pricePerUnit": Double (e.g., 5.0, 75.20)

For "insert_multiple_expenses", the "data" object must contain an "items" key, which is a JSON array. Each object in the array should have:
- "itemName": String
- "category": String (Default: "General")
- "quantity": Integer (Default: 1)
- "pricePerUnit": Double (e.g., 5.0, 75.20)

For "get_expenses_by_category", the "data" object must contain:
- "category": String

For "get_expenses_above_price", the "data" object must contain:
- "minPrice": Double

For "search_expenses_by_name", the "data" object must contain:
- "nameQuery": String

For "other_question", the "data" object should contain:
- "original_question": String (the user's original question)

If any required data for an action is missing, try to infer reasonably or set "action" to "other_question" and include the original query.
Only output the valid JSON object. Do not include any other text, explanations, or markdown.

User: """

_PROMPT_TAIL = """

Assistant (JSON Output Only):"""


def compile_prompt(user_text: str) -> str:
    """
    Build the full prompt for one user request.

    The user's text is embedded verbatim: no truncation, no escaping.
    Concatenation rather than str.format keeps braces in the text harmless.
    """
    return _PROMPT_HEAD + user_text + _PROMPT_TAIL
