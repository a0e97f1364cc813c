import pytest

from moderation_engine.models.content import ContentRef
from moderation_engine.models.enums import ContentType
from moderation_engine.streaming.content_scan_consumer import ContentScanConsumer


def _find_case(engine, content_id):
    with engine.store.transaction() as tx:
        return tx.find_case(ContentRef(content_type=ContentType.POST, content_id=content_id))


def test_new_content_is_scored(engine):
    consumer = ContentScanConsumer(engine, broker=None)

    consumer.handle({
        "content_type": "post",
        "content_id": "post-9",
        "user_id": "owner-9",
        "text_content": "stupid idiot moron loser",
        "created_at": "2024-03-01T11:59:00+00:00",
    })

    case = _find_case(engine, "post-9")
    assert case.owner_id == "owner-9"
    assert case.risk_score is not None
    assert case.automated_signals["toxicity"] > 0
    assert case.scored_at == engine.clock()


def test_malformed_message_raises(engine):
    consumer = ContentScanConsumer(engine, broker=None)

    with pytest.raises(ValueError):
        consumer.handle({"content_type": "hologram", "content_id": "x", "user_id": "u"})
    with pytest.raises(KeyError):
        consumer.handle({"content_type": "post", "user_id": "u"})
