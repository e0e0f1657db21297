"""Random short slugs for menu links."""

import secrets
import string

SLUG_ALPHABET = string.ascii_letters + string.digits + "_-"
SLUG_LENGTH = 8


def generate_slug(length: int = SLUG_LENGTH) -> str:
    """Generate a URL-safe random slug.

    64 symbols over 8 positions gives 2**48 possible slugs, so collisions are
    rare but still possible; callers must handle them.
    """
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))
