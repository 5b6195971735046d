from __future__ import annotations

import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .analyze import analyze_prompts
from .config import PromptLensConfig
from .constants import ExitCode
from .errors import ConfigError, PromptLensError
from .logging import PromptLensLogger
from .utils import json_dumps


def load_input(source: Optional[str]) -> Tuple[str, List[str]]:
    """
    Read ``{"date": ..., "prompts": [...]}`` from a file path, or stdin when
    ``source`` is None or ``-``.
    """
    if source and source != "-":
        raw = Path(source).read_text(encoding="utf-8")
    else:
        raw = sys.stdin.read()

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Input is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Input must be a JSON object with 'date' and 'prompts'")
    date = payload.get("date")
    prompts = payload.get("prompts")
    if not isinstance(date, str) or not date:
        raise ConfigError("Input 'date' must be a non-empty string")
    if not isinstance(prompts, list) or not all(isinstance(p, str) for p in prompts):
        raise ConfigError("Input 'prompts' must be a list of strings")
    return date, prompts


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    return asyncio.run(async_main(argv))


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    run_id = str(uuid.uuid4())

    try:
        config = PromptLensConfig()
    except ValidationError as exc:
        PromptLensLogger(run_id).error("config_invalid", component="config", error=str(exc))
        return int(ExitCode.ERROR)

    logger = PromptLensLogger(run_id, verbose=config.verbose)

    def on_fallback(skipped: str, next_provider: str) -> None:
        logger.collect_warning(
            f"{skipped} unavailable, falling back to {next_provider}",
            component="fallback",
        )

    try:
        date, prompts = load_input(args[0] if args else None)
        result = await analyze_prompts(
            config,
            prompts,
            date,
            on_fallback=on_fallback,
            on_progress=lambda done, total: logger.info(
                "batch_complete", component="analyzer", done=done, total=total
            ),
            logger=logger,
        )
    except PromptLensError as exc:
        logger.error("analysis_failed", error=str(exc), error_type=type(exc).__name__)
        return int(exc.exit_code)
    except OSError as exc:
        logger.error("input_unreadable", error=str(exc))
        return int(ExitCode.ERROR)

    sys.stdout.write(json_dumps(result.to_dict()) + "\n")
    return int(ExitCode.SUCCESS)


if __name__ == "__main__":
    sys.exit(main())
