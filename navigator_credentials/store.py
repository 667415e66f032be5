"""
CredentialStore — A directory of independently encrypted credential files.

Provides the public API of the credential store:
- ``put(name, value)`` — encrypt and persist a secret
- ``get(name)`` — read and decrypt a secret
- ``has(name)`` / ``remove(name)`` / ``list()`` — manage entries
- ``put_structured`` / ``get_structured`` — serialized payloads
- ``recode(new_key)`` — re-encrypt every entry under a new key

One file per entry at ``<directory>/<name>.yml.enc``. The reserved file
``<directory>/check.enc`` holds the literal ``OK`` sealed under the active
key, so the store can tell which of several candidate keys is current
without touching real secrets.

Concurrency Note:
    Operations are synchronous and hold no locks. Concurrent writers on
    the same directory (including ``recode`` against anything else) must
    be serialized by the caller.

Security Note:
    Never log plaintext or ciphertext values. Only log entry names,
    operations and candidate key positions.
"""
import os
import logging
from pathlib import Path
from types import ModuleType
from typing import Any, Iterator, Optional, Sequence, Union

from . import serializers
from .config import DEFAULT_DIR, StoreConfig
from .envelope import seal, unseal, validate_key
from .exceptions import (
    CredentialsError,
    IntegrityError,
    InvalidNameError,
    MalformedEnvelopeError,
    NoMatchingKeyError,
    NotFoundError,
    PayloadEncodingError,
)
from .serializers import Serializer

logger = logging.getLogger("navigator.credentials")

ENTRY_SUFFIX = ".yml.enc"
MARKER_NAME = "check.enc"
MARKER_PLAINTEXT = b"OK"

_TMP_SUFFIX = ".tmp"
_STAGING_SUFFIX = ".recode"


def _write_synced(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` and flush it to disk before returning."""
    with path.open("wb") as fp:
        fp.write(data)
        fp.flush()
        os.fsync(fp.fileno())


class CredentialStore:
    """Encrypted credential files sharing one active key.

    The store is opened with either a single ``key`` or an ordered list of
    candidate ``keys``. If the directory already has a check marker, the
    first candidate that decrypts it to ``OK`` becomes the active key.
    Otherwise a fresh marker is written under the first candidate, or,
    when the directory already holds entries (a store written without a
    marker), under the first candidate able to read the first entry.

    Args:
        directory: Store root, defaults to ``./credentials``. Created if
            missing.
        keys: Ordered candidate keys (16, 24 or 32 bytes each).
        key: Single key, shorthand for ``keys=[key]``.
        serializer: Collaborator used by the structured helpers, defaults
            to :mod:`navigator_credentials.serializers`.
        create_marker: Write a check marker into a fresh directory.

    Raises:
        InvalidKeySizeError: A candidate key has an invalid length.
        NoMatchingKeyError: No candidate key validates the check marker.
    """

    def __init__(
        self,
        directory: Union[str, os.PathLike, None] = None,
        keys: Optional[Sequence[bytes]] = None,
        *,
        key: Optional[bytes] = None,
        serializer: Union[Serializer, ModuleType] = serializers,
        create_marker: bool = True,
    ) -> None:
        if key is not None and keys is not None:
            raise TypeError("Pass either 'key' or 'keys', not both")
        candidates = [key] if key is not None else list(keys or [])
        # validate every candidate before touching the filesystem
        candidates = [validate_key(k) for k in candidates]
        if not candidates:
            raise NoMatchingKeyError("No candidate keys given")

        self._directory = Path(
            directory if directory is not None else DEFAULT_DIR
        ).expanduser().absolute()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._serializer = serializer
        self._create_marker = create_marker
        self._active_key: bytes
        self._active_key_index: Optional[int]
        self._resolve_key(candidates)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: StoreConfig, **kwargs: Any) -> "CredentialStore":
        """Open a store described by a validated :class:`StoreConfig`."""
        return cls(
            config.directory,
            keys=config.keys,
            create_marker=config.create_marker,
            **kwargs,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "CredentialStore":
        """Open the store configured by CREDENTIALS_KEY* / CREDENTIALS_DIR."""
        return cls.from_config(StoreConfig.from_env(), **kwargs)

    # ------------------------------------------------------------------
    # Key resolution
    # ------------------------------------------------------------------

    def _resolve_key(self, candidates: Sequence[bytes]) -> None:
        marker = self._marker_path
        if marker.exists():
            envelope = marker.read_bytes()
            for index, candidate in enumerate(candidates):
                try:
                    plaintext = unseal(candidate, envelope)
                except (IntegrityError, MalformedEnvelopeError):
                    logger.warning(
                        "Candidate key #%d rejected by check marker in %s",
                        index, self._directory,
                    )
                    continue
                if plaintext == MARKER_PLAINTEXT:
                    self._active_key = candidate
                    self._active_key_index = index
                    logger.info(
                        "Opened credentials store %s with candidate key #%d",
                        self._directory, index,
                    )
                    return
                logger.warning(
                    "Candidate key #%d decrypted an unexpected check marker",
                    index,
                )
            raise NoMatchingKeyError(
                f"None of {len(candidates)} candidate key(s) matches the "
                f"check marker in {self._directory}"
            )

        if self._create_marker:
            index = self._match_existing_entry(candidates)
            self._active_key = candidates[index]
            self._active_key_index = index
            self._write(marker, seal(self._active_key, MARKER_PLAINTEXT))
            logger.info(
                "Initialized credentials store %s with candidate key #%d",
                self._directory, index,
            )
        else:
            self._active_key = candidates[0]
            self._active_key_index = 0
            logger.info(
                "Opened credentials store %s without check marker",
                self._directory,
            )

    def _match_existing_entry(self, candidates: Sequence[bytes]) -> int:
        """Pick the candidate that opens the first entry of a marker-less store.

        A directory without marker but with entries was written without
        one; sealing a marker under a key that cannot read those entries
        would lock the right key out.
        """
        entries = self._entry_files()
        if not entries:
            return 0
        envelope = entries[0].read_bytes()
        for index, candidate in enumerate(candidates):
            try:
                unseal(candidate, envelope)
            except (IntegrityError, MalformedEnvelopeError):
                logger.warning(
                    "Candidate key #%d cannot read %s", index, entries[0].name,
                )
                continue
            return index
        raise NoMatchingKeyError(
            f"None of {len(candidates)} candidate key(s) can read "
            f"{entries[0].name} in {self._directory}"
        )

    # ------------------------------------------------------------------
    # Paths and file helpers
    # ------------------------------------------------------------------

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def active_key_index(self) -> Optional[int]:
        """Position of the active key among the candidates given at open.

        ``None`` once :meth:`recode` has switched to a key that was not a
        candidate.
        """
        return self._active_key_index

    @property
    def _marker_path(self) -> Path:
        return self._directory / MARKER_NAME

    def _validate_name(self, name: str) -> None:
        """Validate a credentials entry name.

        Raises:
            InvalidNameError: If the name would not map to exactly one
                entry file inside the store directory.
        """
        if not isinstance(name, str) or not name:
            raise InvalidNameError(name, "must be a non-empty string")
        separators = {"/", "\0", os.sep}
        if os.altsep:
            separators.add(os.altsep)
        if any(sep in name for sep in separators):
            raise InvalidNameError(name, "cannot contain path separators")

    def _path(self, name: str) -> Path:
        self._validate_name(name)
        return self._directory / f"{name}{ENTRY_SUFFIX}"

    def _entry_files(self) -> list[Path]:
        """Entry files of the store, sorted by filename.

        Scratch files end in ``.tmp`` or ``.recode`` and never match.
        """
        return sorted(
            path for path in self._directory.iterdir()
            if path.name.endswith(ENTRY_SUFFIX) and path.is_file()
        )

    def _write(self, path: Path, data: bytes) -> None:
        """Replace ``path`` with ``data`` through a temporary sibling file."""
        tmp = path.with_name(f".{path.name}{_TMP_SUFFIX}")
        try:
            _write_synced(tmp, data)
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(self, name: str, plaintext: Union[bytes, str]) -> None:
        """Encrypt ``plaintext`` and write it as entry ``name``.

        An existing entry is fully replaced. ``str`` values are stored
        UTF-8 encoded.
        """
        path = self._path(name)
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        self._write(path, seal(self._active_key, plaintext))
        logger.debug("Credentials put: %s", name)

    def get(self, name: str) -> bytes:
        """Read and decrypt entry ``name``.

        Raises:
            NotFoundError: If there is no such entry.
            IntegrityError: If the entry fails authentication.
            MalformedEnvelopeError: If the entry file is truncated.
        """
        path = self._path(name)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(name) from None
        return unseal(self._active_key, data)

    def get_text(self, name: str, encoding: str = "utf-8") -> str:
        return self.get(name).decode(encoding)

    def has(self, name: str) -> bool:
        """Check if a credentials entry exists."""
        return self._path(name).is_file()

    def remove(self, name: str) -> bool:
        """Remove entry ``name``; silently succeeds if it does not exist.

        Returns:
            True if a file was deleted.
        """
        try:
            self._path(name).unlink()
        except FileNotFoundError:
            return False
        logger.debug("Credentials remove: %s", name)
        return True

    def put_structured(self, name: str, value: Any) -> None:
        """Like :meth:`put`, but serializes ``value`` first.

        Raises:
            PayloadEncodingError: If the serializer rejects the value.
        """
        try:
            payload = self._serializer.encode(value)
        except CredentialsError:
            raise
        except Exception as err:
            raise PayloadEncodingError(
                f"Cannot encode credentials '{name}'"
            ) from err
        self.put(name, payload)

    def get_structured(self, name: str) -> Any:
        """Like :meth:`get`, but deserializes the payload.

        The default serializer reads JSON only. Entries written as
        block-style YAML by other tools fail to decode; pass a YAML
        ``serializer`` to read those.

        Raises:
            PayloadEncodingError: If the payload cannot be decoded.
        """
        plaintext = self.get(name)
        try:
            return self._serializer.decode(plaintext)
        except CredentialsError:
            raise
        except Exception as err:
            raise PayloadEncodingError(
                f"Cannot decode credentials '{name}'"
            ) from err

    def recode(self, new_key: bytes) -> int:
        """Re-encrypt every entry (and the check marker) under ``new_key``.

        Runs in two phases. First every entry is decrypted under the active
        key and sealed under ``new_key`` into a hidden staging file; any
        failure removes the staging files and leaves the store untouched.
        Then the staging files are renamed over their targets, entries
        first and the check marker last, and the active key is switched.

        Warning:
            The rename phase is not atomic as a whole. If the OS fails a
            rename midway, the directory is left with some entries under
            the new key and the rest (plus the marker) under the old one.
            The error is logged with the committed entries and re-raised.

        Returns:
            Number of entries recoded, marker excluded.

        Raises:
            InvalidKeySizeError: ``new_key`` is not 16, 24 or 32 bytes;
                nothing is touched.
            IntegrityError, MalformedEnvelopeError: An entry cannot be
                decrypted under the active key; nothing is changed.
        """
        new_key = validate_key(new_key)
        entries = self._entry_files()
        marker = self._marker_path
        with_marker = self._create_marker or marker.exists()
        logger.info(
            "Recoding %d credentials entries in %s", len(entries), self._directory,
        )

        staged: list[tuple[Path, Path]] = []
        try:
            for path in entries:
                plaintext = unseal(self._active_key, path.read_bytes())
                staged.append(self._stage(path, seal(new_key, plaintext)))
            if with_marker:
                staged.append(self._stage(marker, seal(new_key, MARKER_PLAINTEXT)))
        except BaseException as err:
            failed = entries[len(staged)].name if len(staged) < len(entries) else MARKER_NAME
            logger.error(
                "Recode aborted at %s, store left unchanged: %s",
                failed, type(err).__name__,
            )
            for staging, _ in staged:
                staging.unlink(missing_ok=True)
            raise

        committed: list[str] = []
        try:
            for staging, target in staged:
                os.replace(staging, target)
                committed.append(target.name)
        except OSError:
            logger.error(
                "Recode interrupted after %d of %d file(s); store in %s is in "
                "a mixed-key state. Recoded: %s",
                len(committed), len(staged), self._directory, committed,
            )
            for staging, _ in staged[len(committed):]:
                staging.unlink(missing_ok=True)
            raise

        self._active_key = new_key
        self._active_key_index = None
        logger.info(
            "Recode complete: %d entries in %s", len(entries), self._directory,
        )
        return len(entries)

    def _stage(self, target: Path, data: bytes) -> tuple[Path, Path]:
        staging = target.with_name(f".{target.name}{_STAGING_SUFFIX}")
        try:
            _write_synced(staging, data)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise
        return staging, target

    def list(self) -> set[str]:
        """List the names of all credentials entries."""
        names = {path.name[:-len(ENTRY_SUFFIX)] for path in self._entry_files()}
        # a bare ".yml.enc" file is still recoded but has no usable name
        names.discard("")
        return names

    # ------------------------------------------------------------------
    # Magic Methods
    # ------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        try:
            return self.has(name)  # type: ignore[arg-type]
        except InvalidNameError:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.list()))

    def __len__(self) -> int:
        return len(self.list())

    def __repr__(self) -> str:
        return f"<CredentialStore directory={str(self._directory)!r}>"
