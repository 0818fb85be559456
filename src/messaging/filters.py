"""Subscription filters.

A filter is validated before any transport is opened. Every populated field
narrows the match; tag constraints match when the message carries a tag with
that name whose first value is one of the listed values.
"""

from dataclasses import dataclass

from messaging.exceptions import FilterValidationError
from messaging.message import ORDER_PROCESS_KIND, PAYMENT_RECEIPT_KIND, Message

TagConstraint = tuple[str, tuple[str, ...]]


@dataclass(frozen=True)
class MessageFilter:
    ids: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    tags: tuple[TagConstraint, ...] = ()
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    @classmethod
    def of(
        cls,
        ids=(),
        authors=(),
        kinds=(),
        tags: dict | None = None,
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> "MessageFilter":
        """Convenience constructor accepting lists and a ``{name: values}`` dict."""
        constraints = tuple(
            (name, tuple(values) if isinstance(values, list | tuple) else (values,))
            for name, values in sorted((tags or {}).items())
        )
        return cls(
            ids=tuple(ids),
            authors=tuple(authors),
            kinds=tuple(kinds),
            tags=constraints,
            since=since,
            until=until,
            limit=limit,
        )

    @classmethod
    def for_order(cls, order_id: str, since: int | None = None) -> "MessageFilter":
        """Every order-processing message and receipt carrying ``order_id``."""
        return cls.of(
            kinds=(ORDER_PROCESS_KIND, PAYMENT_RECEIPT_KIND),
            tags={"order": [order_id]},
            since=since,
        )

    def validate(self) -> None:
        errors: dict[str, list[str]] = {}

        if any(not isinstance(value, str) or not value for value in self.ids):
            errors.setdefault("ids", []).append("Ids must be non-empty strings")
        if any(not isinstance(value, str) or not value for value in self.authors):
            errors.setdefault("authors", []).append("Authors must be non-empty strings")
        if any(not isinstance(kind, int) or isinstance(kind, bool) or kind < 0 for kind in self.kinds):
            errors.setdefault("kinds", []).append("Kinds must be non-negative integers")
        for name, values in self.tags:
            if not name:
                errors.setdefault("tags", []).append("Tag constraint needs a name")
            elif not values:
                errors.setdefault("tags", []).append(f"Tag constraint {name!r} needs at least one value")
        if self.since is not None and self.since < 0:
            errors.setdefault("since", []).append("since must not be negative")
        if self.until is not None and self.until < 0:
            errors.setdefault("until", []).append("until must not be negative")
        if self.since is not None and self.until is not None and self.since > self.until:
            errors.setdefault("since", []).append("since must not be later than until")
        if self.limit is not None and self.limit <= 0:
            errors.setdefault("limit", []).append("limit must be positive")
        if not (self.ids or self.authors or self.kinds or self.tags):
            errors.setdefault("filter", []).append("Filter must constrain ids, authors, kinds or tags")

        if errors:
            raise FilterValidationError(errors)

    def matches(self, message: Message) -> bool:
        if self.ids and message.id not in self.ids:
            return False
        if self.authors and message.author not in self.authors:
            return False
        if self.kinds and message.kind not in self.kinds:
            return False
        if self.since is not None and message.created_at < self.since:
            return False
        if self.until is not None and message.created_at > self.until:
            return False
        for name, values in self.tags:
            if not any(len(tag) > 1 and tag[1] in values for tag in message.all(name)):
                return False
        return True

    def to_wire(self) -> dict:
        """Relay-protocol representation (``#x`` keys for tag constraints)."""
        wire: dict = {}
        if self.ids:
            wire["ids"] = list(self.ids)
        if self.authors:
            wire["authors"] = list(self.authors)
        if self.kinds:
            wire["kinds"] = list(self.kinds)
        for name, values in self.tags:
            wire[f"#{name}"] = list(values)
        if self.since is not None:
            wire["since"] = self.since
        if self.until is not None:
            wire["until"] = self.until
        if self.limit is not None:
            wire["limit"] = self.limit
        return wire
