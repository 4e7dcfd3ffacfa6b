"""Write fresh JWT_SECRET and TOKEN_ENCRYPTION_KEY values into .env.

Copies .env.template when .env does not exist yet. The Fernet key encrypts
stored Shopify admin tokens, so rotating it makes saved credentials unreadable.
"""

import os
import secrets

from cryptography.fernet import Fernet

TEMPLATE_PATH = ".env.template"
ENV_PATH = ".env"
GENERATED_KEYS = ("JWT_SECRET", "TOKEN_ENCRYPTION_KEY")


def generate() -> dict:
    return {
        "JWT_SECRET": secrets.token_urlsafe(32),
        "TOKEN_ENCRYPTION_KEY": Fernet.generate_key().decode(),
    }


def render(content: str, values: dict) -> str:
    lines = []
    seen = set()
    for line in content.splitlines():
        key = line.split("=", 1)[0].strip()
        if key in values:
            lines.append(f"{key}={values[key]}")
            seen.add(key)
        else:
            lines.append(line)
    lines.extend(f"{key}={values[key]}" for key in GENERATED_KEYS if key not in seen)
    return "\n".join(lines) + "\n"


def main():
    source = ENV_PATH if os.path.exists(ENV_PATH) else TEMPLATE_PATH
    content = ""
    if os.path.exists(source):
        with open(source, "r") as f:
            content = f.read()

    values = generate()
    with open(ENV_PATH, "w") as f:
        f.write(render(content, values))

    print(f"Wrote JWT_SECRET and TOKEN_ENCRYPTION_KEY to {ENV_PATH} (from {source})")


if __name__ == "__main__":
    main()
