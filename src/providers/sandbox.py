"""Ephemeral code sandboxes for the code execution tool.

A sandbox is created for one execution and must be destroyed by the caller
whatever the outcome.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from src.config import settings
from src.core.errors import ToolExecutionError

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str = ""


class Sandbox(Protocol):
    async def run(self, code: str) -> ExecutionResult:
        ...

    async def destroy(self) -> None:
        ...


class SandboxProvider(Protocol):
    async def create(self) -> Sandbox:
        ...


class DaytonaSandbox:
    def __init__(self, client, sandbox):
        self._client = client
        self._sandbox = sandbox

    async def run(self, code: str) -> ExecutionResult:
        response = await self._sandbox.process.code_run(code)
        output = response.result or ""
        if response.exit_code == 0:
            return ExecutionResult(exit_code=0, stdout=output)
        return ExecutionResult(exit_code=response.exit_code, stdout="", stderr=output)

    async def destroy(self) -> None:
        try:
            await self._sandbox.delete()
        finally:
            await self._client.close()


class DaytonaSandboxProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        target: Optional[str] = None,
    ):
        self.api_key = api_key or settings.DAYTONA_API_KEY
        self.api_url = api_url or settings.DAYTONA_API_URL
        self.target = target or settings.DAYTONA_TARGET

    async def create(self) -> DaytonaSandbox:
        from daytona import AsyncDaytona, DaytonaConfig

        if not self.api_key:
            raise ToolExecutionError("DAYTONA_API_KEY is required for code execution")
        client = AsyncDaytona(
            DaytonaConfig(api_key=self.api_key, api_url=self.api_url, target=self.target)
        )
        try:
            sandbox = await client.create()
        except Exception:
            await client.close()
            raise
        logger.info(f"Provisioned sandbox {getattr(sandbox, 'id', '?')}")
        return DaytonaSandbox(client, sandbox)
