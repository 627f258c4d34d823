import pytest

from little_things.mappings import FieldMappings, importance_to_rating, rating_to_importance
from little_things.models import PartnerProfile


@pytest.mark.parametrize(
    "rating,importance",
    [(5, "high"), (4, "high"), (3, "medium"), (2, "low"), (1, "low")],
)
def test_rating_to_importance(rating, importance):
    assert rating_to_importance(rating) == importance


@pytest.mark.parametrize("importance,rating", [("high", 5), ("medium", 3), ("low", 1), (None, 1)])
def test_importance_to_rating(importance, rating):
    assert importance_to_rating(importance) == rating


def test_unsupported_version_is_rejected():
    with pytest.raises(ValueError):
        FieldMappings({"version": 1})


def test_load_from_custom_path(tmp_path):
    custom = tmp_path / "mappings.yaml"
    custom.write_text(
        "version: 3\n"
        "tables: {memories: journal_entries}\n"
        "memories: {id: [id], title: [headline]}\n"
        "partner_profiles: {}\nplans: {}\napp_settings: {}\n",
        encoding="utf-8",
    )

    mappings = FieldMappings.load(custom)

    assert mappings.table("memories") == "journal_entries"
    assert mappings.table("plans") == "plans"
    assert mappings.memory_to_row({"title": "Hello", "rating": 5}) == {"headline": "Hello"}


def test_memory_row_uses_first_non_empty_legacy_column(field_mappings):
    memory = field_mappings.memory_from_row(
        {
            "id": 7,
            "title": "Beach",
            "body": "",
            "description": "Sunset swim",
            "tags": [],
            "category": "travel",
            "importance": "medium",
            "created_at": "2024-04-01T10:00:00+00:00",
        }
    )

    assert memory.id == "7"
    assert memory.description == "Sunset swim"
    assert memory.category == "travel"
    assert memory.rating == 3
    assert memory.date == "2024-04-01T10:00:00+00:00"


def test_memory_without_tags_gets_default_category(field_mappings):
    memory = field_mappings.memory_from_row({"id": "1", "title": "x"})
    assert memory.category == "general"
    assert memory.rating == 1


def test_memory_to_row_skips_identity(field_mappings):
    row = field_mappings.memory_to_row(
        {"id": "x", "created_at": "then", "title": "t", "description": "d", "category": "food", "rating": 3}
    )
    assert row == {"title": "t", "body": "d", "tags": ["food"], "importance": "medium"}


def test_profile_dates_built_from_legacy_birthday_and_anniversary(field_mappings):
    profile = field_mappings.profile_from_row(
        {"id": "p", "birthday": "1990-07-04", "anniversary": "2018-09-09", "favourite_color": "Green"}
    )

    assert [(d.date, d.description) for d in profile.important_dates] == [
        ("1990-07-04", "Birthday"),
        ("2018-09-09", "Anniversary"),
    ]
    assert profile.favorite_color == "Green"
    assert profile.favorite_food == "Unknown"


def test_profile_to_row_writes_every_field(field_mappings):
    row = field_mappings.profile_to_row(PartnerProfile(name="Sam", favorite_hobbies=["chess"]))

    assert row["name"] == "Sam"
    assert row["favorite_color"] == "Unknown"
    assert row["favorite_hobbies"] == ["chess"]
    assert row["important_dates"] == []
    assert row["sizes"] == {"shirt": None, "pants": None, "shoe": None, "ring": None}
    assert "id" not in row and "created_at" not in row


def test_plan_row_mapping(field_mappings):
    plan = field_mappings.plan_from_row(
        {
            "id": 3,
            "title": "Dinner",
            "scheduled_for": "2024-05-05T19:00:00+00:00",
            "tags": ["food"],
            "priority": "urgent",
            "is_completed": True,
        }
    )

    assert plan.id == "3"
    assert plan.date == "2024-05-05T19:00:00+00:00"
    assert plan.category == "food"
    assert plan.priority == "medium"
    assert plan.completed is True


def test_settings_row_mapping(field_mappings):
    app_settings = field_mappings.settings_from_row({"daily_prompts": False, "privacy": "public", "userName": "Alex"})

    assert app_settings.notifications is False
    assert app_settings.privacy == "public"
    assert app_settings.user_name == "Alex"


def test_empty_important_dates_column_is_not_rebuilt_from_birthday(field_mappings):
    profile = field_mappings.profile_from_row(
        {"id": "p", "important_dates": [], "birthday": "1990-07-04", "love_languages": ["touch"]}
    )

    assert profile.important_dates == []
    assert profile.birthday == "1990-07-04"
    assert profile.favorite_hobbies == []
    assert profile.love_languages == ["touch"]


def test_favorite_things_is_not_read_as_notes(field_mappings):
    profile = field_mappings.profile_from_row({"id": "p", "favourite_things": "tulips"})

    assert profile.notes == ""
    assert profile.favorite_things == "tulips"
