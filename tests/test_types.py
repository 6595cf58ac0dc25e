import pytest
from pydantic import ValidationError

from fillerwatch.common.types import (
    AniListSearchResponse,
    CacheEntry,
    EpisodePage,
    EpisodeRecord,
    ShowQuery,
)


def test_show_query_normalises_titles():
    query = ShowQuery.from_titles("  Naruto ", None, "", "NARUTO", "ナルト", year="2002-10-03")

    assert query.titles == ("Naruto", "ナルト")
    assert query.primary_title == "Naruto"
    assert query.year == 2002


def test_show_query_accepts_single_string_title():
    query = ShowQuery(titles="Bleach", year=2004)

    assert query.titles == ("Bleach",)


def test_show_query_requires_a_title():
    with pytest.raises(ValidationError):
        ShowQuery.from_titles(None, "   ")


def test_show_query_is_hashable_and_immutable():
    first = ShowQuery(titles=("One Piece",), year=1999)
    second = ShowQuery.from_titles("One Piece", year=1999)

    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1
    with pytest.raises(ValidationError):
        first.year = 2000


def test_show_query_ignores_unparseable_year():
    assert ShowQuery(titles=("Naruto",), year="TBA").year is None


def test_episode_record_parses_jikan_payload():
    record = EpisodeRecord.model_validate(
        {
            "mal_id": 136,
            "url": "https://myanimelist.net/anime/20/Naruto/episode/136",
            "title": "The Worst Three-Man Team",
            "aired": "2005-05-11T00:00:00+00:00",
            "filler": True,
            "recap": False,
        }
    )

    assert record.number == 136
    assert record.filler is True


def test_episode_record_defaults_missing_filler_to_false():
    assert EpisodeRecord.model_validate({"mal_id": 1}).filler is False
    assert EpisodeRecord.model_validate({"mal_id": 1, "filler": None}).filler is False


def test_episode_page_requires_data_list():
    with pytest.raises(ValidationError):
        EpisodePage.model_validate({"pagination": {}})


def test_anilist_response_candidates_tolerate_missing_levels():
    assert AniListSearchResponse.model_validate({}).candidates() == []
    assert AniListSearchResponse.model_validate({"data": {"Page": None}}).candidates() == []

    response = AniListSearchResponse.model_validate(
        {
            "data": {
                "Page": {
                    "media": [
                        {
                            "idMal": 21,
                            "title": {"romaji": "One Piece", "english": None, "native": "ONE PIECE"},
                            "seasonYear": 1999,
                        }
                    ]
                }
            }
        }
    )
    (media,) = response.candidates()
    assert media.idMal == 21
    assert media.title.variants() == ["One Piece", "ONE PIECE"]


def test_cache_entry_freshness():
    entry = CacheEntry(identifier=1, fetched_at=100.0, episodes=())

    assert entry.is_fresh(149.0, 50.0)
    assert not entry.is_fresh(150.0, 50.0)


def test_anilist_media_accepts_null_title():
    response = AniListSearchResponse.model_validate(
        {"data": {"Page": {"media": [{"idMal": 5, "title": None, "seasonYear": None}]}}}
    )

    (media,) = response.candidates()
    assert media.title is None
