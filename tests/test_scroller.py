from conftest import FakeElement, FakePage

from leadscraper.core.scroller import scroll_results


class GrowingFeed(FakeElement):
    """Feed whose scroll height follows *heights*; each scroll loads *per_scroll* cards."""

    def __init__(self, page, card_selector, heights, per_scroll=0):
        super().__init__()
        self.page = page
        self.card_selector = card_selector
        self.heights = list(heights)
        self.per_scroll = per_scroll
        self.scrolls = 0

    def evaluate(self, script):
        if "scrollTo" in script:
            self.scrolls += 1
            cards = self.page.dom.setdefault(self.card_selector, [])
            cards.extend(FakeElement() for _ in range(self.per_scroll))
            return None
        index = min(self.scrolls, len(self.heights) - 1)
        return self.heights[index]


def _page_with_feed(selectors, heights, initial_cards=3, per_scroll=0):
    card_selector = selectors["result_card"].primary
    page = FakePage({card_selector: [FakeElement() for _ in range(initial_cards)]})
    feed = GrowingFeed(page, card_selector, heights, per_scroll)
    page.dom[selectors["results_feed"].primary] = [feed]
    return page, feed


def test_stops_when_height_stops_changing(selectors, settings):
    page, feed = _page_with_feed(selectors, heights=[1000, 2000, 3000, 3000], per_scroll=2)

    count = scroll_results(page, selectors, settings)

    assert feed.scrolls == 3
    assert count == 3 + 3 * 2
    assert page.waits == [settings.scroll_settle] * 3


def test_attempts_are_bounded(selectors, settings):
    endless = [1000 * (i + 1) for i in range(100)]
    page, feed = _page_with_feed(selectors, heights=endless)

    scroll_results(page, selectors, settings)

    assert feed.scrolls == settings.max_scroll_attempts


def test_target_stops_early(selectors, settings):
    endless = [1000 * (i + 1) for i in range(100)]
    page, feed = _page_with_feed(selectors, heights=endless, initial_cards=3, per_scroll=4)

    count = scroll_results(page, selectors, settings, target=10)

    assert feed.scrolls == 2
    assert count == 11


def test_missing_feed_returns_card_count(selectors, settings):
    page = FakePage({selectors["result_card"].primary: [FakeElement(), FakeElement()]})
    assert scroll_results(page, selectors, settings) == 2
    assert page.waits == []


def test_end_of_list_marker_stops_scrolling(selectors, settings):
    endless = [1000 * (i + 1) for i in range(100)]
    page, feed = _page_with_feed(selectors, heights=endless)
    page.dom[selectors["end_of_list"].primary] = [FakeElement(text="You've reached the end of the list.")]

    scroll_results(page, selectors, settings)

    assert feed.scrolls == 0


def _detached(script):
    raise RuntimeError("Execution context was destroyed")


def test_detached_feed_returns_loaded_cards(selectors, settings):
    card_selector = selectors["result_card"].primary
    page = FakePage({
        card_selector: [FakeElement() for _ in range(3)],
        selectors["results_feed"].primary: [FakeElement(evaluate=_detached)],
    })

    assert scroll_results(page, selectors, settings) == 3
    assert page.waits == []


class FailingFeed(GrowingFeed):
    """Scrolls fine once, then the execution context goes away."""

    def evaluate(self, script):
        if self.scrolls >= 1 and "scrollTo" in script:
            _detached(script)
        return super().evaluate(script)


def test_scroll_failure_mid_loop_stops_scrolling(selectors, settings):
    card_selector = selectors["result_card"].primary
    page = FakePage({card_selector: [FakeElement() for _ in range(3)]})
    feed = FailingFeed(page, card_selector, [1000 * (i + 1) for i in range(100)], per_scroll=2)
    page.dom[selectors["results_feed"].primary] = [feed]

    count = scroll_results(page, selectors, settings)

    assert feed.scrolls == 1
    assert count == 5
