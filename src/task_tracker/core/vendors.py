"""AI vendor display names and availability hints."""

import os
from dataclasses import dataclass, field

from task_tracker.db.models import AIVendor

VENDOR_DISPLAY_NAMES = {
    AIVendor.CLAUDE: "Claude (Anthropic)",
    AIVendor.CHATGPT: "ChatGPT",
    AIVendor.GEMINI: "Google Gemini",
    AIVendor.CURSOR: "Cursor AI",
    AIVendor.COPILOT: "GitHub Copilot",
    AIVendor.WINDSURF: "Windsurf",
    AIVendor.CODY: "Cody",
    AIVendor.AIDER: "Aider",
    AIVendor.OTHER: "Other",
}

# Vendors without an entry are assumed available.
VENDOR_API_KEY_VARS = {
    AIVendor.CLAUDE: "ANTHROPIC_API_KEY",
    AIVendor.CHATGPT: "OPENAI_API_KEY",
    AIVendor.GEMINI: "GOOGLE_API_KEY",
}


@dataclass
class VendorAvailability:
    vendor: AIVendor
    is_available: bool
    warning: str | None = None
    fallback_suggestions: list[AIVendor] = field(default_factory=list)


def get_vendor_display_name(vendor: AIVendor | str) -> str:
    return VENDOR_DISPLAY_NAMES[AIVendor(vendor)]


def check_vendor_availability(vendor: AIVendor | str) -> VendorAvailability:
    vendor = AIVendor(vendor)
    env_var = VENDOR_API_KEY_VARS.get(vendor)
    if env_var and not os.environ.get(env_var):
        return VendorAvailability(
            vendor=vendor,
            is_available=False,
            warning=f"No API key configured for {get_vendor_display_name(vendor)}",
            fallback_suggestions=[v for v in AIVendor if v != vendor][:3],
        )
    return VendorAvailability(vendor=vendor, is_available=True)


def get_vendor_warning_message(vendor: AIVendor | str) -> str | None:
    availability = check_vendor_availability(vendor)
    if availability.is_available:
        return None
    message = availability.warning
    if availability.fallback_suggestions:
        names = ", ".join(get_vendor_display_name(v) for v in availability.fallback_suggestions)
        message += f". Consider using: {names}"
    return message
