import pytest

from src.functions.deck_meta_sync.core.config.ladders import (
    describe,
    load_ladder_table,
    parse_ladder_table,
)


def _config(**categories):
    return {"version": 1, "categories": categories or {"meta": {"ladder": [None, 100]}}}


def test_bundled_table_covers_every_category():
    table = load_ladder_table()

    assert set(table.categories) == {"meta", "decks", "card_stats", "archetype_decks", "matchups"}
    assert table.resolve("meta", "standard").thresholds == (None, 1000, 500, 250, 100)
    assert table.resolve("meta", "standard").min_viable_size == 10


def test_rank_overrides_are_resolved_per_mode():
    table = load_ladder_table()

    assert table.resolve("archetype_decks", "standard", "diamond_to_legend").thresholds == (
        12800,
        6400,
        3200,
        800,
        200,
    )
    assert table.resolve("archetype_decks", "wild", "top_legend").thresholds == (100, 50)
    # Ranks without an override use the category ladder.
    assert table.resolve("archetype_decks", "wild", "unknown_rank").thresholds == (200, 100, 50)


def test_mode_wide_override_replaces_the_ladder():
    table = parse_ladder_table(
        _config(decks={"ladder": [None, 800, 200], "ladders": {"wild": [400, 100]}})
    )

    assert table.resolve("decks", "wild", "top_legend").thresholds == (400, 100)
    assert table.resolve("decks", "standard", "top_legend").thresholds == (None, 800, 200)


def test_defaults_are_merged_into_categories():
    table = parse_ladder_table(
        {
            "version": 1,
            "defaults": {"concurrency": 4, "per_attempt_timeout_seconds": 12},
            "categories": {"meta": {"ladder": [None]}, "decks": {"ladder": [50], "concurrency": 1}},
        }
    )

    assert table.category("meta").concurrency == 4
    assert table.category("decks").concurrency == 1
    assert table.resolve("decks", "standard").per_attempt_timeout_seconds == 12.0


@pytest.mark.parametrize(
    "ladder",
    [
        [],
        [100, None],
        [100, 200],
        [100, 100],
        [0],
        ["100"],
        [True],
    ],
)
def test_invalid_ladders_are_rejected(ladder):
    with pytest.raises(ValueError):
        parse_ladder_table(_config(meta={"ladder": ladder}))


def test_unsupported_version_is_rejected():
    with pytest.raises(ValueError, match="version"):
        parse_ladder_table({"version": 2, "categories": {"meta": {"ladder": [None]}}})


def test_unknown_category_is_a_value_error():
    table = parse_ladder_table(_config())

    with pytest.raises(ValueError):
        table.resolve("heroes", "standard")


def test_env_var_points_at_alternate_file(monkeypatch, tmp_path):
    path = tmp_path / "ladders.yaml"
    path.write_text("version: 1\ncategories:\n  meta:\n    ladder: [300, 30]\n", encoding="utf-8")
    monkeypatch.setenv("META_LADDER_CONFIG", str(path))

    table = load_ladder_table()

    assert table.resolve("meta", "standard").thresholds == (300, 30)


def test_missing_or_malformed_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_ladder_table(str(tmp_path / "absent.yaml"))

    broken = tmp_path / "broken.yaml"
    broken.write_text("version: [1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_ladder_table(str(broken))


def test_describe_names_the_site_default():
    assert describe((None, 800, 200)) == "[default, 800, 200]"
