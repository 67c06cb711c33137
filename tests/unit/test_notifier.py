"""Unit tests for change notifications."""

import pytest

from teamhub.kernel.events.event_types import ChangeNotice
from teamhub.kernel.events.notifier import ChangeNotifier


class TestChangeNotifier:
    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self):
        notifier = ChangeNotifier()
        received = []

        async def async_callback(notice):
            received.append(("async", notice.operation))

        notifier.subscribe(lambda notice: received.append(("sync", notice.operation)))
        notifier.subscribe(async_callback)

        await notifier.publish(ChangeNotice())

        assert received == [("sync", "insert"), ("async", "insert")]
        assert notifier.subscriber_count == 2

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        notifier = ChangeNotifier()
        received = []
        unsubscribe = notifier.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        await notifier.publish(ChangeNotice())

        assert received == []
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        notifier = ChangeNotifier()
        received = []

        def broken(notice):
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)

        await notifier.publish(ChangeNotice(operation="delete"))

        assert [n.operation for n in received] == ["delete"]

    def test_notice_defaults_to_event_table(self):
        assert ChangeNotice().table == "time_machine_events"
