"""Tests for sciensaurus/storage/article_store.py -- upsert, interactions, statistics."""

import pytest

from sciensaurus.storage.article_store import ArticleStore

URL = "https://pubmed.ncbi.nlm.nih.gov/12345678/"


@pytest.fixture
def store(clock):
    s = ArticleStore(":memory:", clock=clock)
    yield s
    s.close()


def summary(url=URL, **extra):
    data = {"url": url, "title": "Shock wave therapy", "keywords": ["elbow"]}
    data.update(extra)
    return data


# ---------------------------------------------------------------------------
# store_article_summary
# ---------------------------------------------------------------------------

class TestStoreArticleSummary:

    def test_insert_returns_id(self, store):
        out = store.store_article_summary(summary())
        assert out["articleSummaryId"] == 1
        assert out["userArticle"] is None
        assert store.get_article(1)["title"] == "Shock wave therapy"

    def test_same_url_upserts_single_row(self, store, clock):
        first = store.store_article_summary(summary())
        created = store.get_article(first["articleSummaryId"])
        clock.advance(minutes=5)
        second = store.store_article_summary(summary(title="Updated title"))

        assert second["articleSummaryId"] == first["articleSummaryId"]
        assert store.count_articles() == 1
        updated = store.get_article(first["articleSummaryId"])
        assert updated["title"] == "Updated title"
        assert updated["updated_at"] > created["updated_at"]
        assert updated["created_at"] == created["created_at"]

    def test_url_and_title_required(self, store):
        with pytest.raises(ValueError):
            store.store_article_summary({"url": URL})
        with pytest.raises(ValueError):
            store.store_article_summary({"title": "No URL"})

    def test_json_columns_round_trip(self, store):
        visual = [{"emoji": "💪", "point": "Works"}]
        store.store_article_summary(summary(visual_summary=visual, study_metadata={"cohortSize": 12}))
        article = store.get_article_by_url(URL)
        assert article["visual_summary"] == visual
        assert article["study_metadata"] == {"cohortSize": 12}
        assert article["keywords"] == ["elbow"]

    @pytest.mark.parametrize("url,expected", [
        ("https://pubmed.ncbi.nlm.nih.gov/1/", "PubMed"),
        ("https://www.nature.com/articles/x", "Nature"),
        ("https://www.sciencedirect.com/science/article/pii/1", "ScienceDirect"),
        ("https://www.bmj.com/content/1", "Bmj"),
    ])
    def test_source_derived_from_url(self, store, url, expected):
        store.store_article_summary(summary(url=url))
        assert store.get_article_by_url(url)["source"] == expected

    def test_explicit_source_kept(self, store):
        store.store_article_summary(summary(source="Custom"))
        assert store.get_article_by_url(URL)["source"] == "Custom"

    def test_user_gets_view_recorded(self, store):
        out = store.store_article_summary(summary(), user_id="alice")
        assert out["userArticle"]["view_count"] == 1
        assert out["userArticle"]["user_id"] == "alice"


class TestPublishDate:

    def test_valid_past_date_kept(self, store):
        assert store.validate_publish_date("2020-01-15") == "2020-01-15"

    def test_future_date_becomes_now(self, store, clock):
        assert store.validate_publish_date("2099-01-01T00:00:00Z") == clock.now.isoformat()

    def test_invalid_date_becomes_none(self, store):
        assert store.validate_publish_date("last Tuesday") is None

    def test_stored_value_validated(self, store):
        store.store_article_summary(summary(publish_date="not a date"))
        assert store.get_article_by_url(URL)["publish_date"] is None


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------

class TestInteractions:

    def test_views_increment(self, store, clock):
        article_id = store.store_article_summary(summary())["articleSummaryId"]
        first = store.record_interaction("alice", article_id)
        clock.advance(hours=1)
        second = store.record_interaction("alice", article_id)
        assert first["view_count"] == 1
        assert second["view_count"] == 2
        assert second["last_viewed_at"] > first["last_viewed_at"]

    def test_bookmark_only_changed_when_given(self, store):
        article_id = store.store_article_summary(summary())["articleSummaryId"]
        store.record_interaction("alice", article_id, is_bookmarked=True)
        assert store.record_interaction("alice", article_id)["is_bookmarked"] is True
        assert store.record_interaction("alice", article_id, is_bookmarked=False)["is_bookmarked"] is False

    def test_toggle_bookmark(self, store):
        article_id = store.store_article_summary(summary())["articleSummaryId"]
        assert store.toggle_bookmark("alice", article_id) is True
        assert store.toggle_bookmark("alice", article_id) is False

    def test_toggle_missing_article(self, store):
        with pytest.raises(KeyError):
            store.toggle_bookmark("alice", 999)

    def test_remove_user_article(self, store):
        article_id = store.store_article_summary(summary(), user_id="alice")["articleSummaryId"]
        assert store.remove_user_article("alice", article_id) is True
        assert store.remove_user_article("alice", article_id) is False
        assert store.get_user_articles("alice") == []
        # The summary itself stays
        assert store.get_article(article_id) is not None

    def test_user_articles_most_recent_first(self, store, clock):
        a = store.store_article_summary(summary(url="https://a.org/1"), user_id="alice")["articleSummaryId"]
        clock.advance(minutes=1)
        store.store_article_summary(summary(url="https://b.org/2"), user_id="alice")
        clock.advance(minutes=1)
        store.record_interaction("alice", a)
        urls = [x["url"] for x in store.get_user_articles("alice")]
        assert urls == ["https://a.org/1", "https://b.org/2"]

    def test_bookmarked_only(self, store):
        a = store.store_article_summary(summary(url="https://a.org/1"), user_id="alice")["articleSummaryId"]
        store.store_article_summary(summary(url="https://b.org/2"), user_id="alice")
        store.toggle_bookmark("alice", a)
        assert [x["url"] for x in store.get_user_articles("alice", bookmarked_only=True)] == ["https://a.org/1"]

    def test_users_are_isolated(self, store):
        store.store_article_summary(summary(), user_id="alice")
        assert store.get_user_articles("bob") == []


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestKeywordStats:

    def test_case_insensitive_counts(self, store):
        store.store_article_summary(summary(url="https://a.org/1", keywords=["Diabetes", "Insulin"]), user_id="alice")
        store.store_article_summary(summary(url="https://a.org/2", keywords=["diabetes", "Exercise", "insulin"]), user_id="alice")
        store.store_article_summary(summary(url="https://a.org/3", keywords=["DIABETES "]), user_id="alice")
        stats = store.get_keyword_stats("alice")
        assert stats == {"researchInterestCount": 2, "topKeyword": "Diabetes"}

    def test_no_articles(self, store):
        assert store.get_keyword_stats("nobody") == {"researchInterestCount": 0, "topKeyword": None}


class TestDashboardStats:

    def test_growth_and_counts(self, store, clock):
        for i in range(2):
            store.store_article_summary(summary(url=f"https://old.org/{i}"), user_id="alice")
        clock.advance(days=40)
        for i in range(3):
            store.store_article_summary(summary(url=f"https://new.org/{i}"), user_id="alice")
        store.toggle_bookmark("alice", 1)
        clock.advance(days=2)

        stats = store.get_dashboard_stats("alice", limit=4)
        assert stats["articlesAnalyzed"] == {"count": 5, "growthPercentage": 50, "savedCount": 1}
        assert len(stats["recentArticles"]) == 4
        assert stats["lastSavedDaysAgo"] == 2

    def test_first_month_is_full_growth(self, store):
        store.store_article_summary(summary(), user_id="alice")
        assert store.get_dashboard_stats("alice")["articlesAnalyzed"]["growthPercentage"] == 100

    def test_empty_user(self, store):
        stats = store.get_dashboard_stats("nobody")
        assert stats["articlesAnalyzed"] == {"count": 0, "growthPercentage": 0, "savedCount": 0}
        assert stats["recentArticles"] == []
        assert stats["lastSavedDaysAgo"] is None
