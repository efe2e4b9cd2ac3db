"""
sochma/utils/telegram_utils.py

Purpose: Telegram message builders

- Constructs sendMessage payloads
- Inline keyboards from prompt choices
- Markdown escaping for user-supplied text
"""

from typing import Any, Dict, List, Optional, Sequence

from sochma.schemas.prompt import Prompt, PromptChoice

BUTTONS_PER_ROW = 2
MAX_CALLBACK_DATA_BYTES = 64  # Bot API limit
MARKDOWN_SPECIAL = ("\\", "_", "*", "`", "[")


def escape_markdown(text: Optional[str]) -> str:
    """
    Escapes legacy Markdown entities so user input cannot break parsing.
    """
    if not text:
        return ""
    for char in MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


def build_inline_keyboard(
    choices: Sequence[PromptChoice],
    per_row: int = BUTTONS_PER_ROW
) -> Optional[Dict[str, Any]]:
    """
    Creates an inline keyboard reply_markup.

    Example:
        choices = [PromptChoice(label="🏠 Buyer", value="role:buyer"), ...]
        -> {"inline_keyboard": [[{"text": "🏠 Buyer", "callback_data": "role:buyer"}, ...]]}
    """
    if not choices:
        return None

    rows: List[List[Dict[str, str]]] = []
    for index in range(0, len(choices), per_row):
        rows.append([
            {
                "text": choice.label,
                "callback_data": choice.value.encode("utf-8")[:MAX_CALLBACK_DATA_BYTES].decode("utf-8", "ignore")
            }
            for choice in choices[index:index + per_row]
        ])

    return {"inline_keyboard": rows}


def create_text_message(
    chat_id: int,
    prompt: Prompt,
    parse_mode: Optional[str] = "Markdown"
) -> Dict[str, Any]:
    """
    Creates a sendMessage payload for a prompt.
    """
    payload: Dict[str, Any] = {
        "chat_id": chat_id,
        "text": prompt.text,
    }

    if parse_mode:
        payload["parse_mode"] = parse_mode

    reply_markup = build_inline_keyboard(prompt.choices)
    if reply_markup:
        payload["reply_markup"] = reply_markup

    return payload
