"""Content store backed by the ``ipfs`` command line binary."""

import asyncio
import json
import logging
import os
import shlex
import shutil
from typing import Any, AsyncIterator, BinaryIO, Dict, Optional

from casgateway.core.exceptions import (
    NotFound,
    StoreError,
    StoreRejected,
    StoreTimeout,
    StoreUnavailable,
)
from casgateway.models.content import ContentStat, NetworkInfo, StoredObject
from casgateway.store.base import ContentStore, ContentStream, looks_like_not_found

logger = logging.getLogger(__name__)

# Fragments of stderr output that mean the node itself is unusable
UNAVAILABLE_MARKERS = (
    "no ipfs repo found",
    "cannot connect to the api",
    "connection refused",
    "someone else has the lock",
)


class IpfsCliStore(ContentStore):
    """IPFS node driven through subprocess invocations of the ``ipfs`` binary.

    The repository path comes from configuration; when unset the child
    process inherits ``IPFS_PATH`` from the gateway's environment.
    Non-zero exit codes are carried verbatim on the raised errors.
    """

    name = "cli"

    def __init__(
        self,
        binary: str = "ipfs",
        *,
        ipfs_path: str = "",
        timeout: float = 30.0,
        max_concurrency: int = 10,
        chunk_size: int = 65536,
        offline: bool = False,
        pin_on_add: bool = True,
    ):
        super().__init__(timeout=timeout, max_concurrency=max_concurrency, chunk_size=chunk_size)
        self.command = shlex.split(binary)
        if not self.command:
            raise ValueError("IPFS binary command is empty")
        self.ipfs_path = ipfs_path
        self.offline = offline
        self.pin_on_add = pin_on_add

    @property
    def endpoint(self) -> str:
        return shlex.join(self.command)

    async def connect(self) -> None:
        if shutil.which(self.command[0]) is None:
            raise StoreUnavailable(
                f"IPFS binary not found: {self.command[0]}", operation="health"
            )
        logger.info(
            "IPFS CLI store ready",
            extra={"ipfs_command": self.endpoint, "ipfs_path": self.ipfs_path or None},
        )

    async def close(self) -> None:
        return None

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.ipfs_path:
            env["IPFS_PATH"] = self.ipfs_path
        return env

    def _argv(self, *args: str) -> list[str]:
        argv = list(self.command)
        if self.offline:
            argv.append("--offline")
        argv.extend(args)
        return argv

    async def _spawn(
        self, operation: str, *args: str, content_id: Optional[str] = None, with_stdin: bool = False
    ) -> asyncio.subprocess.Process:
        argv = self._argv(*args)
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if with_stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(),
            )
        except OSError as e:
            logger.error(
                "Failed to spawn IPFS process",
                extra={"operation": operation, "content_id": content_id, "argv": argv, "error": str(e)},
            )
            raise StoreUnavailable(
                f"Failed to spawn IPFS process: {e}", content_id=content_id, operation=operation
            ) from e

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def _error_from_process(
        self, operation: str, exit_code: int, stderr: bytes, content_id: Optional[str] = None
    ) -> StoreError | NotFound:
        message = stderr.decode("utf-8", errors="replace").strip() or "IPFS command failed"
        logger.error(
            "IPFS command failed",
            extra={
                "operation": operation,
                "content_id": content_id,
                "exit_code": exit_code,
                "stderr": message,
            },
        )

        lowered = message.lower()
        if any(marker in lowered for marker in UNAVAILABLE_MARKERS):
            return StoreUnavailable(message, content_id=content_id, operation=operation, exit_code=exit_code)
        if content_id is not None and looks_like_not_found(message):
            return NotFound(
                f"{content_id}: {message}", content_id=content_id, operation=operation, exit_code=exit_code
            )
        return StoreRejected(message, content_id=content_id, operation=operation, exit_code=exit_code)

    def _timeout_error(self, operation: str, content_id: Optional[str] = None) -> StoreTimeout:
        logger.error(
            "IPFS command timed out",
            extra={"operation": operation, "content_id": content_id, "timeout": self.timeout},
        )
        details = f"IPFS command did not finish within {self.timeout}s"
        return StoreTimeout(
            f"{content_id}: {details}" if content_id else details,
            content_id=content_id,
            operation=operation,
        )

    async def _run(
        self,
        operation: str,
        *args: str,
        content_id: Optional[str] = None,
        file_data: Optional[BinaryIO] = None,
    ) -> bytes:
        """Run one ipfs command to completion and return its stdout."""
        async with self._slot(operation, content_id):
            process = await self._spawn(
                operation, *args, content_id=content_id, with_stdin=file_data is not None
            )
            try:
                stdout, stderr, exit_code = await asyncio.wait_for(
                    self._collect(process, file_data), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                raise self._timeout_error(operation, content_id)
            finally:
                await self._terminate(process)

        if exit_code != 0:
            raise self._error_from_process(operation, exit_code, stderr, content_id)
        return stdout

    async def _collect(
        self, process: asyncio.subprocess.Process, file_data: Optional[BinaryIO]
    ) -> tuple[bytes, bytes, int]:
        async def feed() -> None:
            if file_data is None or process.stdin is None:
                return
            try:
                while chunk := file_data.read(self.chunk_size):
                    process.stdin.write(chunk)
                    await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # Process exited early; its exit code and stderr tell why
                pass
            finally:
                process.stdin.close()

        _, stdout, stderr = await asyncio.gather(
            feed(), process.stdout.read(), process.stderr.read()
        )
        exit_code = await process.wait()
        return stdout, stderr, exit_code

    async def health_check(self) -> Dict[str, Any]:
        stdout = await self._run("health", "version", "--enc=json")
        text = stdout.decode("utf-8", errors="replace").strip()
        try:
            return json.loads(text)
        except ValueError:
            return {"Version": text}

    async def network_info(self) -> NetworkInfo:
        stdout = await self._run("network", "id", "--enc=json")
        try:
            identity = json.loads(stdout)
        except ValueError as e:
            raise StoreRejected(f"Unexpected id output: {stdout[:200]!r}", operation="network") from e

        peers = 0
        if not self.offline:
            # One multiaddress per connected peer
            listing = await self._run("network", "swarm", "peers")
            peers = len(listing.decode("utf-8", errors="replace").split())

        return NetworkInfo(
            node_id=identity.get("ID", ""),
            addresses=identity.get("Addresses") or [],
            agent_version=identity.get("AgentVersion"),
            peers=peers,
        )

    async def add(self, file_data: BinaryIO, filename: str, mime_type: str) -> StoredObject:
        stdout = await self._run(
            "add",
            "add",
            "-Q",
            f"--pin={'true' if self.pin_on_add else 'false'}",
            "--stdin-name",
            filename,
            file_data=file_data,
        )
        lines = stdout.decode("utf-8", errors="replace").split()
        if not lines:
            raise StoreRejected("IPFS add printed no content identifier", operation="add")
        return StoredObject(content_id=lines[-1], name=filename)

    async def open_stream(self, content_id: str) -> ContentStream:
        await self._acquire_slot("cat", content_id)
        process: Optional[asyncio.subprocess.Process] = None
        stderr_task: Optional[asyncio.Future] = None
        try:
            process = await self._spawn("cat", "cat", content_id, content_id=content_id)
            stderr_task = asyncio.ensure_future(process.stderr.read())
            try:
                first = await asyncio.wait_for(process.stdout.read(self.chunk_size), timeout=self.timeout)
                if not first:
                    # Nothing on stdout: the exit code decides between empty content and failure
                    exit_code = await asyncio.wait_for(process.wait(), timeout=self.timeout)
                    if exit_code != 0:
                        stderr = await asyncio.wait_for(stderr_task, timeout=self.timeout)
                        raise self._error_from_process("cat", exit_code, stderr, content_id)
            except asyncio.TimeoutError:
                raise self._timeout_error("cat", content_id)
        except BaseException:
            if process is not None:
                await self._terminate(process)
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()
            self._release_slot()
            raise

        async def on_close() -> None:
            try:
                await self._terminate(process)
                if not stderr_task.done():
                    stderr_task.cancel()
            finally:
                self._release_slot()

        return ContentStream(
            content_id, self._iter_stdout(process, stderr_task, first, content_id), on_close
        )

    async def _iter_stdout(
        self,
        process: asyncio.subprocess.Process,
        stderr_task: asyncio.Future,
        first: bytes,
        content_id: str,
    ) -> AsyncIterator[bytes]:
        if not first:
            return
        yield first
        while True:
            try:
                chunk = await asyncio.wait_for(process.stdout.read(self.chunk_size), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise self._timeout_error("cat", content_id)
            if not chunk:
                break
            yield chunk

        try:
            exit_code = await asyncio.wait_for(process.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise self._timeout_error("cat", content_id)
        if exit_code != 0:
            stderr = await stderr_task
            raise self._error_from_process("cat", exit_code, stderr, content_id)

    async def stat(self, content_id: str) -> ContentStat:
        stdout = await self._run(
            "stat", "files", "stat", "--enc=json", f"/ipfs/{content_id}", content_id=content_id
        )
        try:
            payload = json.loads(stdout)
        except ValueError as e:
            raise StoreRejected(
                f"Unexpected stat output: {stdout[:200]!r}", content_id=content_id, operation="stat"
            ) from e
        return self._stat_from_payload(content_id, payload)

    async def pin(self, content_id: str) -> None:
        await self._run("pin", "pin", "add", content_id, content_id=content_id)

    async def unpin(self, content_id: str) -> None:
        await self._run("unpin", "pin", "rm", content_id, content_id=content_id)
