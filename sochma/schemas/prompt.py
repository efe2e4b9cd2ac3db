"""
sochma/schemas/prompt.py

Purpose: Outbound prompt schema

- Text plus an ordered set of choices
- Transport-neutral: the gateway decides how choices are rendered
"""

from pydantic import BaseModel, Field
from typing import List


class PromptChoice(BaseModel):
    """One selectable option. `value` is the callback data sent back on press."""
    label: str
    value: str

    class Config:
        frozen = True


class Prompt(BaseModel):
    """
    What the bot asks or tells the sender next.
    """
    text: str = Field(..., description="Message text (Telegram Markdown)")
    choices: List[PromptChoice] = Field(default_factory=list)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "text": "🎯 *Perfect! Now let's determine your role.*",
                "choices": [
                    {"label": "🏠 Buyer", "value": "role:buyer"},
                    {"label": "💰 Investor", "value": "role:investor"},
                    {"label": "🔄 Both", "value": "role:both"}
                ]
            }
        }

    def with_error(self, error: str) -> "Prompt":
        """Same question, annotated with why the last answer was rejected."""
        return Prompt(text=f"❌ {error}\n\n{self.text}", choices=list(self.choices))
