"""Attachment storage backends (local directory and SFTP)."""

import asyncio
import io
import logging
import posixpath
import shutil
import stat
from collections.abc import AsyncIterator
from pathlib import Path

import paramiko

from fancynote.config import Settings, settings
from fancynote.utils.exceptions import ConfigurationError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def build_storage_path(user_id: int | str, category: str, name: str) -> str:
    """Storage-relative path for an attachment: <userId>/<category>/<name>."""
    return posixpath.join(str(user_id), category, name)


def is_safe_relative_path(path: str) -> bool:
    """Reject absolute paths and parent-directory segments."""
    if not path or path.startswith("/") or "\\" in path:
        return False
    return ".." not in path.split("/")


class AttachmentStore:
    """
    Interface of the remote attachment store.

    All paths are storage-relative (``<userId>/<category>/<name>``); each
    backend maps them under its own base path. A store instance is one
    connection: ``connect()`` before use, ``close()`` when done.
    """

    async def connect(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def exists(self, path: str) -> bool:
        raise NotImplementedError

    async def ensure_dir(self, path: str) -> None:
        raise NotImplementedError

    async def upload(self, data: bytes, path: str) -> None:
        raise NotImplementedError

    async def download(self, path: str, local_path: Path) -> None:
        raise NotImplementedError

    async def size(self, path: str) -> int:
        raise NotImplementedError

    def iter_bytes(self, path: str) -> AsyncIterator[bytes]:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class LocalAttachmentStore(AttachmentStore):
    """Attachment store backed by a local directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        if not is_safe_relative_path(path):
            raise StorageError(f"Invalid storage path: {path}")
        return self.root / path

    async def connect(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    async def ensure_dir(self, path: str) -> None:
        target = self._resolve(path)
        if target.exists() and not target.is_dir():
            raise StorageError(f"Storage path {path} exists but is not a directory")
        target.mkdir(parents=True, exist_ok=True)

    async def upload(self, data: bytes, path: str) -> None:
        target = self._resolve(path)
        await self.ensure_dir(posixpath.dirname(path))
        target.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {path}")

    async def download(self, path: str, local_path: Path) -> None:
        source = self._resolve(path)
        if not source.is_file():
            raise NotFoundError("File", detail=f"Stored file not found: {path}")
        shutil.copyfile(source, local_path)

    async def size(self, path: str) -> int:
        source = self._resolve(path)
        if not source.is_file():
            raise NotFoundError("File", detail=f"Stored file not found: {path}")
        return source.stat().st_size

    async def iter_bytes(self, path: str) -> AsyncIterator[bytes]:
        source = self._resolve(path)
        if not source.is_file():
            raise NotFoundError("File", detail=f"Stored file not found: {path}")
        with open(source, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                yield chunk

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()
            logger.info(f"Deleted stored file: {path}")


class SftpAttachmentStore(AttachmentStore):
    """Attachment store on a remote SFTP server (paramiko, run in worker threads)."""

    def __init__(
        self,
        host: str,
        username: str,
        private_key: str,
        base_path: str,
        port: int = 22,
        passphrase: str | None = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        # Keys passed through env vars often carry literal "\n"
        self.private_key = private_key.replace("\\n", "\n")
        self.passphrase = passphrase
        self.base_path = base_path
        self._transport: paramiko.Transport | None = None
        self._sftp: paramiko.SFTPClient | None = None

    def _remote(self, path: str) -> str:
        if not is_safe_relative_path(path):
            raise StorageError(f"Invalid storage path: {path}")
        return posixpath.join(self.base_path, path)

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise StorageError("SFTP client is not connected")
        return self._sftp

    def _load_key(self) -> paramiko.PKey:
        for key_class in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
            try:
                return key_class.from_private_key(
                    io.StringIO(self.private_key), password=self.passphrase
                )
            except paramiko.SSHException:
                continue
        raise ConfigurationError("SFTP private key could not be loaded")

    def _connect(self) -> None:
        transport = paramiko.Transport((self.host, self.port))
        try:
            transport.connect(username=self.username, pkey=self._load_key())
            self._sftp = paramiko.SFTPClient.from_transport(transport)
        except Exception:
            transport.close()
            raise
        self._transport = transport

    async def connect(self) -> None:
        try:
            await asyncio.to_thread(self._connect)
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"SFTP connection error: {e}")
            raise StorageError(f"SFTP connection failed: {e}") from e
        logger.info("SFTP connected successfully.")

    def _close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    async def close(self) -> None:
        try:
            await asyncio.to_thread(self._close)
            logger.info("SFTP disconnected.")
        except Exception as e:
            # Never mask the error that led to the disconnect
            logger.error(f"SFTP disconnection error: {e}")

    def _exists(self, remote: str) -> bool:
        try:
            self.sftp.stat(remote)
            return True
        except FileNotFoundError:
            return False

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._exists, self._remote(path))

    def _ensure_dir(self, remote_dir: str) -> None:
        current = ""
        for part in remote_dir.split("/"):
            if not part:
                current = current or "/"
                continue
            current = posixpath.join(current, part) if current else part
            try:
                attrs = self.sftp.stat(current)
            except FileNotFoundError:
                self.sftp.mkdir(current)
                continue
            if not stat.S_ISDIR(attrs.st_mode or 0):
                raise StorageError(f"SFTP path {current} exists but is not a directory")

    async def ensure_dir(self, path: str) -> None:
        remote = self._remote(path)
        try:
            await asyncio.to_thread(self._ensure_dir, remote)
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(f"Failed to ensure SFTP directory {remote}: {e}") from e

    def _put(self, data: bytes, remote: str) -> None:
        self._ensure_dir(posixpath.dirname(remote))
        self.sftp.putfo(io.BytesIO(data), remote)

    async def upload(self, data: bytes, path: str) -> None:
        remote = self._remote(path)
        try:
            await asyncio.to_thread(self._put, data, remote)
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"SFTP upload error for {remote}: {e}")
            raise StorageError(f"SFTP upload failed for {remote}: {e}") from e
        logger.info(f"SFTP: Successfully uploaded to {remote}")

    async def download(self, path: str, local_path: Path) -> None:
        remote = self._remote(path)
        try:
            await asyncio.to_thread(self.sftp.get, remote, str(local_path))
        except FileNotFoundError as e:
            raise NotFoundError("File", detail=f"SFTP file not found: {remote}") from e
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(f"SFTP download failed for {remote}: {e}") from e

    async def size(self, path: str) -> int:
        remote = self._remote(path)
        try:
            attrs = await asyncio.to_thread(self.sftp.stat, remote)
        except FileNotFoundError as e:
            raise NotFoundError("File", detail=f"SFTP file not found: {remote}") from e
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(f"SFTP stat failed for {remote}: {e}") from e
        if stat.S_ISDIR(attrs.st_mode or 0):
            raise NotFoundError("File", detail=f"SFTP path is a directory: {remote}")
        return attrs.st_size or 0

    async def iter_bytes(self, path: str) -> AsyncIterator[bytes]:
        remote = self._remote(path)
        try:
            handle = await asyncio.to_thread(self.sftp.open, remote, "rb")
        except FileNotFoundError as e:
            raise NotFoundError("File", detail=f"SFTP file not found: {remote}") from e
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(f"SFTP open failed for {remote}: {e}") from e
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(handle.read, CHUNK_SIZE)
                except (paramiko.SSHException, OSError) as e:
                    raise StorageError(f"SFTP read failed for {remote}: {e}") from e
                if not chunk:
                    break
                yield chunk
        finally:
            await asyncio.to_thread(handle.close)

    async def delete(self, path: str) -> None:
        remote = self._remote(path)
        try:
            await asyncio.to_thread(self.sftp.remove, remote)
        except FileNotFoundError:
            logger.warning(f"SFTP delete skipped, file not found: {remote}")
        except (paramiko.SSHException, OSError) as e:
            raise StorageError(f"SFTP delete failed for {remote}: {e}") from e


def get_attachment_store(config: Settings | None = None) -> AttachmentStore:
    """
    Create a fresh, unconnected attachment store for the configured backend.

    Args:
        config: Settings to read (defaults to the application settings)

    Returns:
        AttachmentStore instance
    """
    config = config or settings
    if config.storage_backend == "sftp":
        if not (config.sftp_host and config.sftp_username and config.sftp_private_key):
            raise ConfigurationError(
                "SFTP storage requires SFTP_HOST, SFTP_USERNAME and SFTP_PRIVATE_KEY"
            )
        return SftpAttachmentStore(
            host=config.sftp_host,
            port=config.sftp_port,
            username=config.sftp_username,
            private_key=config.sftp_private_key,
            passphrase=config.sftp_passphrase,
            base_path=config.storage_base_path,
        )
    if config.storage_backend == "local":
        return LocalAttachmentStore(config.storage_base_path)
    raise ConfigurationError(f"Unknown storage backend: {config.storage_backend}")
