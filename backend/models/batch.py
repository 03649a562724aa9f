"""Typed operations for atomic, single-partition writes."""
from dataclasses import dataclass
from typing import Iterator, List, Union

from errors import InvalidArgumentError
from models.session import Message, Session


@dataclass(frozen=True)
class SessionUpdate:
    """Replace a session record."""
    session: Session

    @property
    def partition_key(self) -> str:
        return self.session.session_id


@dataclass(frozen=True)
class MessageUpdate:
    """Upsert a message record."""
    message: Message

    @property
    def partition_key(self) -> str:
        return self.message.session_id


BatchOperation = Union[SessionUpdate, MessageUpdate]


class TransactionalBatch:
    """
    Set of session and message writes that must be applied together.

    Every operation must target the batch's partition key; the store applies
    the whole batch or none of it.
    """

    def __init__(self, partition_key: str):
        if not partition_key:
            raise InvalidArgumentError("Batch partition key cannot be empty")
        self.partition_key = partition_key
        self._operations: List[BatchOperation] = []

    def add(self, operation: BatchOperation) -> "TransactionalBatch":
        if not isinstance(operation, (SessionUpdate, MessageUpdate)):
            raise InvalidArgumentError(
                f"Unsupported batch operation: {type(operation).__name__}"
            )
        if operation.partition_key != self.partition_key:
            raise InvalidArgumentError(
                "All items must have the same partition key.",
                details={
                    "partition_key": self.partition_key,
                    "operation_partition_key": operation.partition_key,
                },
            )
        self._operations.append(operation)
        return self

    def upsert_session(self, session: Session) -> "TransactionalBatch":
        return self.add(SessionUpdate(session))

    def upsert_message(self, message: Message) -> "TransactionalBatch":
        return self.add(MessageUpdate(message))

    @property
    def operations(self) -> List[BatchOperation]:
        return list(self._operations)

    @property
    def sessions(self) -> List[Session]:
        return [op.session for op in self._operations if isinstance(op, SessionUpdate)]

    @property
    def messages(self) -> List[Message]:
        return [op.message for op in self._operations if isinstance(op, MessageUpdate)]

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[BatchOperation]:
        return iter(self._operations)
