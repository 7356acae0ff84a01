import secrets
from urllib.parse import urlencode

# No 0/O/1/I so codes survive being read aloud or retyped from a screenshot
REFERRAL_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_LENGTH = 8


def generate_ref_code() -> str:
    """Generate a short unique referral code."""
    return "".join(secrets.choice(REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def generate_unsubscribe_token() -> str:
    """Generate an opaque one-click unsubscribe token."""
    return secrets.token_urlsafe(24)


def build_unsubscribe_url(base_url: str, token: str) -> str:
    """Build the one-click unsubscribe URL for a recipient's token."""
    return f"{base_url}/api/email/unsubscribe?{urlencode({'token': token})}"


def build_preferences_url(base_url: str, token: str) -> str:
    """Build the email preferences page URL for a recipient's token."""
    return f"{base_url}/email/preferences?{urlencode({'token': token})}"


def build_referral_url(base_url: str, referral_code: str | None) -> str | None:
    """Build the invite URL shown in the brief footer, if the recipient has a code."""
    if not referral_code:
        return None
    return f"{base_url}/invite?{urlencode({'ref': referral_code})}"
