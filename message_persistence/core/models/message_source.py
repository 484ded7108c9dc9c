"""
MessageSource enum and the classification of the ingestion channel that produced an item.
"""

from enum import Enum

from message_persistence.observability.logger import get_logger

logger = get_logger(__name__)


class MessageSource(str, Enum):
    """
    Ingestion channel of a message.

    Stored as its value in the ``source`` column of both message tables.
    """

    MQ = "MQ"
    HTTP_API = "HTTP_API"
    FILE = "FILE"
    UNKNOWN = "UNKNOWN"


# Channel names still sent by older adapters
LEGACY_SOURCE_ALIASES = {
    "IBM_MQ": MessageSource.MQ,
    "CFT_FILE": MessageSource.FILE,
}


def _parse_hint(hint: MessageSource | str) -> MessageSource | None:
    if isinstance(hint, MessageSource):
        return hint

    normalized = str(hint).strip().upper()
    if not normalized:
        return None

    if normalized in LEGACY_SOURCE_ALIASES:
        return LEGACY_SOURCE_ALIASES[normalized]

    try:
        return MessageSource(normalized)
    except ValueError:
        return None


def classify_endpoint(endpoint: str | None) -> MessageSource:
    """
    Classify an endpoint identifier (URI, queue name, directory) by substring.

    Checks are ordered: MQ, then HTTP, then file.

    Examples:
        >>> classify_endpoint("jms:queue:PAYMENTS.IN")
        <MessageSource.MQ: 'MQ'>
        >>> classify_endpoint("rest:post:/payments")
        <MessageSource.HTTP_API: 'HTTP_API'>
        >>> classify_endpoint("file:/data/inbox")
        <MessageSource.FILE: 'FILE'>
    """
    if not endpoint:
        return MessageSource.UNKNOWN

    uri = endpoint.lower()

    if uri.startswith("jms:") or "mq" in uri:
        return MessageSource.MQ
    if "http" in uri or "rest" in uri:
        return MessageSource.HTTP_API
    if "file" in uri:
        return MessageSource.FILE
    return MessageSource.UNKNOWN


def classify_source(
    explicit_hint: MessageSource | str | None = None,
    endpoint: str | None = None,
) -> MessageSource:
    """
    Resolve which ingestion channel produced an item.

    An explicit hint wins when it names a known channel. An unrecognised
    hint is ignored and the endpoint identifier decides.

    Args:
        explicit_hint: Channel declared by the ingress adapter
        endpoint: Identifier of the endpoint the item was consumed from

    Returns:
        The resolved MessageSource (UNKNOWN when nothing matches)
    """
    if isinstance(explicit_hint, str) and not explicit_hint.strip():
        explicit_hint = None

    if explicit_hint is not None:
        source = _parse_hint(explicit_hint)
        if source is not None:
            return source
        logger.warning(
            f"Unrecognised source hint {explicit_hint!r}, classifying by endpoint",
            extra={"source_hint": str(explicit_hint), "endpoint": endpoint},
        )

    return classify_endpoint(endpoint)
