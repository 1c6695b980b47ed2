import json

from eventsearch.services.taxonomy_service import TaxonomyService, get_taxonomy_service


def test_empty_query_returns_no_matches():
    taxonomy = get_taxonomy_service()
    assert taxonomy.search_taxonomy("") == []
    assert taxonomy.search_taxonomy("   ") == []
    assert taxonomy.get_search_suggestions("  ") == []


def test_detect_service_from_keyword():
    assert get_taxonomy_service().detect_service_from_query("photographer") == "photography"


def test_detect_service_returns_none_without_match():
    assert get_taxonomy_service().detect_service_from_query("zzzqx") is None


def test_exact_label_scores_highest():
    match = get_taxonomy_service().search_taxonomy("Drone Shoot")[0]
    assert match.taxonomy_id == "drone_shoot"
    assert match.score == 265
    assert match.type == "service"


def test_dj_query_prefers_the_dj_service():
    assert get_taxonomy_service().detect_service_from_query("dj") == "dj"
    matches = get_taxonomy_service().search_taxonomy("dj", types=("service",))
    assert [(match.taxonomy_id, match.score) for match in matches[:2]] == [("dj", 325), ("music", 185)]


def test_scores_add_up_across_keywords():
    matches = get_taxonomy_service().search_taxonomy("band", types=("service",))
    assert [match.taxonomy_id for match in matches[:2]] == ["music_band", "music"]
    assert matches[0].matched_keyword == "band"


def test_ties_keep_declaration_order(tmp_path):
    path = tmp_path / "taxonomy.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "events",
                    "label": "Events",
                    "subcategories": [
                        {
                            "id": "entertainers",
                            "label": "Entertainers",
                            "services": [
                                {"id": "juggler", "label": "Juggler", "keywords": ["circus"]},
                                {"id": "clown", "label": "Clown", "keywords": ["circus"]},
                            ],
                        }
                    ],
                }
            ]
        ),
        encoding="utf-8",
    )

    matches = TaxonomyService(path).search_taxonomy("circus")

    assert [match.taxonomy_id for match in matches] == ["juggler", "clown"]
    assert matches[0].score == matches[1].score == 145


def test_matches_are_sorted_by_score():
    matches = get_taxonomy_service().search_taxonomy("wedding dj")
    scores = [match.score for match in matches]
    assert scores == sorted(scores, reverse=True)


def test_type_filter_limits_levels():
    matches = get_taxonomy_service().search_taxonomy("photo", types=("category",))
    assert matches
    assert {match.type for match in matches} == {"category"}


def test_suggestions_shape_and_limit():
    suggestions = get_taxonomy_service().get_search_suggestions("photographer", limit=4)
    assert 0 < len(suggestions) <= 4
    first = suggestions[0]
    assert first["id"] == first["taxonomy_id"] == "photography"
    assert first["type"] == "service"
    assert first["matched_keyword"] == "photographer"
