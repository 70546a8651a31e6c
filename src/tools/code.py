import logging
import time

from src.config import settings
from src.core.errors import ValidationError
from src.tools.registry import Tool, ToolContext
from src.tools.schemas import CodeExecutionInput

logger = logging.getLogger(__name__)


async def code_execution(args: CodeExecutionInput, ctx: ToolContext) -> dict:
    if len(args.code) > settings.CODE_MAX_CHARS:
        raise ValidationError(
            f"Code is {len(args.code)} characters; the limit is {settings.CODE_MAX_CHARS}. "
            "Split the work into smaller snippets."
        )

    started = time.monotonic()
    sandbox = await ctx.sandbox.create()
    try:
        result = await sandbox.run(args.code)
    finally:
        try:
            await sandbox.destroy()
        except Exception as e:
            logger.error(f"Failed to destroy sandbox: {e}", exc_info=True)

    return {
        "success": result.exit_code == 0,
        "exitCode": result.exit_code,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "description": args.description,
        "executionTimeMs": int((time.monotonic() - started) * 1000),
    }


CODE_EXECUTION_TOOL = Tool(
    name="codeExecution",
    description=(
        "Run Python in an isolated sandbox for statistics, trend analysis and calculations on patent data. "
        "Always print() the results you need. Maximum 10,000 characters of code."
    ),
    args_schema=CodeExecutionInput,
    execute=code_execution,
    side_effects=("sandbox:provision", "sandbox:destroy"),
)
