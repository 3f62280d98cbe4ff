from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from niftyai.config import get_settings


def main() -> int:
    settings = get_settings()

    provider_keys = {
        "gemini": ("GEMINI_API_KEY", settings.gemini_api_key),
        "perplexity": ("PERPLEXITY_API_KEY", settings.perplexity_api_key),
    }
    required_name, required_value = provider_keys[settings.ai_provider]
    required = {required_name: required_value}
    optional = {name: value for provider, (name, value) in provider_keys.items() if provider != settings.ai_provider}

    missing_required = [name for name, value in required.items() if not str(value or "").strip()]

    print("Environment check")
    print("=================")
    print(f"AI_PROVIDER={settings.ai_provider}")
    for name, value in required.items():
        print(f"[{'ok' if value else 'missing'}] {name} (required)")
    for name, value in optional.items():
        print(f"[{'ok' if value else 'missing'}] {name} (optional)")

    if missing_required:
        print("\nMissing required environment variables:")
        for item in missing_required:
            print(f"- {item}")
        return 1

    print("\nAll required environment variables are present.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
