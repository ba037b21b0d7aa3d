import uuid
import logging
from typing import Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
import orjson
from .conf import (
    SESSION_ID,
    SESSION_CREATED
)

logger = logging.getLogger("notecipher.session")


class SessionData(MutableMapping[str, Any]):
    """Session-scoped storage.

    Equivalent of a browser tab's ``sessionStorage``: values live for the
    lifetime of the session, survive an app reload through
    :meth:`dumps` / :meth:`loads`, and are never written to persistent
    storage by this library. Only JSON-serializable values are accepted.

    A snapshot older than ``max_age`` seconds is discarded on load.
    """

    _internal_attrs = frozenset({
        '_data', '_changed', '_id_', '_identity', '_new',
        '_max_age', '_now', '__created__', '_created',
    })

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
        id: Optional[str] = None,
        identity: Optional[Any] = None,
        max_age: Optional[int] = None
    ) -> None:
        object.__setattr__(self, '_data', {})
        # If new, mark as changed so it gets saved
        object.__setattr__(self, '_changed', True if new else False)
        data = dict(data) if data else None
        # Unique ID:
        self._id_ = (data.pop(SESSION_ID, None) if data else id) or uuid.uuid4().hex
        self._identity = identity
        self._new = new or not data
        self._max_age = max_age or None
        created = data.pop(SESSION_CREATED, None) if data else None
        self.__created__ = datetime.now(timezone.utc)
        now = int(self.__created__.timestamp())
        self._now = now  # time for this instance creation
        age = now - created if created else 0
        if max_age is not None and age > max_age:
            logger.debug(
                "Session %s expired (age=%ds max_age=%ds), discarding data",
                self._id_, age, max_age,
            )
            data = None
            created = None
            self._new = True
        self._created = now if created is None else created
        ## Data updating.
        if data is not None:
            for key, value in data.items():
                self._check_serializable(key, value)
            self._data.update(data)

    def __repr__(self) -> str:
        # values may hold key material: only expose names
        return (
            f'<Session [new:{self.new}, created:{self.created}] '
            f'keys={list(self._data.keys())}>'
        )

    # --- Serialization helpers ---

    @staticmethod
    def _is_serializable(value: Any) -> bool:
        """Check if a value survives a JSON snapshot unchanged."""
        if value is None or isinstance(value, (bool, int, float, str)):
            return True
        if isinstance(value, dict):
            return all(
                isinstance(k, str) and SessionData._is_serializable(v)
                for k, v in value.items()
            )
        if isinstance(value, (list, tuple)):
            return all(SessionData._is_serializable(v) for v in value)
        return False

    def _check_serializable(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise TypeError(f"Session keys must be str, got {type(key).__name__}")
        if not self._is_serializable(value):
            raise TypeError(
                f"Session value for {key!r} is not JSON-serializable "
                f"({type(value).__name__})"
            )

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def logon_time(self) -> datetime:
        return self.__created__

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def identity(self) -> Optional[Any]:
        return self._identity

    @property
    def created(self) -> int:
        return self._created

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @max_age.setter
    def max_age(self, value: Optional[int]) -> None:
        self._max_age = value

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def changed(self) -> None:
        self._changed = True

    def session_data(self) -> dict:
        """Return a shallow copy of the stored values."""
        return dict(self._data)

    def invalidate(self) -> None:
        """Clear all session data."""
        self._changed = True
        self._data = {}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._check_serializable(key, value)
        self._data[key] = value
        self._changed = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._changed = True

    def __setattr__(self, key: str, value: Any) -> None:
        if (
            key in self._internal_attrs
            or key.startswith('_')
            or isinstance(getattr(type(self), key, None), property)
        ):
            object.__setattr__(self, key, value)
        else:
            raise AttributeError(
                f"Use item assignment to store session values ({key!r})"
            )

    # --- Snapshots ---

    def dumps(self) -> bytes:
        """dumps

            Snapshot the session so a reloaded app can restore it.
        Returns:
            bytes: orjson document with the values plus session metadata.
        """
        payload = dict(self._data)
        payload[SESSION_ID] = self._id_
        payload[SESSION_CREATED] = self._created
        data = orjson.dumps(payload)
        self._changed = False
        return data

    @classmethod
    def loads(
        cls,
        snapshot: bytes,
        identity: Optional[Any] = None,
        max_age: Optional[int] = None
    ) -> "SessionData":
        """loads.

            Restore a session from a :meth:`dumps` snapshot.
        Args:
            snapshot (bytes): data produced by dumps().
            identity (Any): optional session identity.
            max_age (int): discard the snapshot when older than this.

        Raises:
            ValueError: snapshot is not a JSON object.

        Returns:
            SessionData: restored session.
        """
        try:
            data = orjson.loads(snapshot)
        except orjson.JSONDecodeError as err:
            raise ValueError(f"Invalid session snapshot: {err}") from err
        if not isinstance(data, dict):
            raise ValueError("Invalid session snapshot: expected an object")
        return cls(data=data, identity=identity, max_age=max_age)
