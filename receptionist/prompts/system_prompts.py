"""
System prompt rendering for the realtime receptionist.

A business's active prompt is a template with placeholders for its type,
services, customer-facing info, today's date and the tools on offer. The
voice rules are appended so every business gets phone-friendly replies.
"""

from datetime import date
from typing import Iterable, Optional

from receptionist.schemas.business_schema import Business

PROMPT_KIND_RECEPTIONIST = "receptionist"

VOICE_STYLE_RULES = """
VOICE INTERACTION RULES (critical for phone calls):
- Keep responses to 1-2 sentences maximum. This is a phone call, not a text chat.
- Never use markdown, bullet points, numbered lists, or any text formatting.
- Never use emojis or special characters.
- Spell out phone numbers digit by digit.
- For dates, say "Tuesday the fourteenth of January" not "01/14" or "2024-01-14".
- If you mishear something, say "Sorry, could you repeat that?" naturally.
- Ask ONE question at a time. Never combine multiple questions.
"""

DEFAULT_PROMPT_TEMPLATE = """You are the AI receptionist for a {BUSINESS_TYPE} business.

BUSINESS INFO:
{BUSINESS INFO}

SERVICES OFFERED:
{LIST OF SERVICES}

Today's date is {CURRENT_DATE}.

TOOLS: {TOOL_NAMES}
If you need a tool that is not available yet, call request_tool with its name.
When requesting get_quote, always include the service_name the caller wants.

BOOKING FLOW:
1. Find the service the caller needs with get_service_details.
2. Collect what the quote needs and call get_quote.
3. Check the caller's preferred day with check_day_availability.
4. Create the caller's profile with create_user (the mobile number identifies them).
5. Book with create_booking using the quote id.

DO NOT:
- Guess prices, availability or details that no tool returned
- Book without the caller confirming the date, time and price
"""


def render_instructions(
    template: str,
    business: Business,
    service_names: Iterable[str],
    business_info: str,
    tool_names: Iterable[str],
    today: Optional[date] = None,
) -> str:
    """Fill the template placeholders and append the voice rules."""
    today = today or date.today()
    replacements = {
        "{BUSINESS_TYPE}": business.business_type,
        "{LIST OF SERVICES}": "\n".join(f"- {name}" for name in service_names) or "- (none listed)",
        "{BUSINESS INFO}": business_info.strip(),
        "{CURRENT_DATE}": today.strftime("%A %d %B %Y") + f" ({today.isoformat()})",
        "{TOOL_NAMES}": ", ".join(tool_names),
    }
    rendered = template
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return f"{rendered.rstrip()}\n{VOICE_STYLE_RULES}"
