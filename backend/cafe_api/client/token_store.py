"""Where a staff device keeps its tokens between requests."""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredTokens:
    access_token: str
    refresh_token: str


class TokenStore(ABC):
    """Persistence port for the current staff session's tokens."""

    @abstractmethod
    def load(self) -> Optional[StoredTokens]:
        ...

    @abstractmethod
    def save(self, tokens: StoredTokens) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryTokenStore(TokenStore):
    """Tokens live only as long as the process."""

    def __init__(self, tokens: Optional[StoredTokens] = None) -> None:
        self._tokens = tokens

    def load(self) -> Optional[StoredTokens]:
        return self._tokens

    def save(self, tokens: StoredTokens) -> None:
        self._tokens = tokens

    def clear(self) -> None:
        self._tokens = None


class JsonFileTokenStore(TokenStore):
    """Tokens kept in a JSON file readable only by the owner."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[StoredTokens]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token or not refresh_token:
            return None
        return StoredTokens(access_token=access_token, refresh_token=refresh_token)

    def save(self, tokens: StoredTokens) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(asdict(tokens), f)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
