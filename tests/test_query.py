from remote.query import Filter, Order, RowFilter


def test_filters_render_as_postgrest_params():
    assert Filter.eq("id", "t1").to_param() == ("id", "eq.t1")
    assert Filter.ilike("status", "published").to_param() == ("status", "ilike.published")
    assert Order("created_at").to_param() == ("order", "created_at.desc")
    assert Order("created_at", descending=False).to_param() == ("order", "created_at.asc")


def test_search_renders_quoted_or_group():
    key, value = Filter.search(("title", "description"), "mara, kenya").to_param()
    assert key == "or"
    assert value == '(title.ilike."*mara, kenya*",description.ilike."*mara, kenya*")'


def test_ilike_without_wildcards_is_case_insensitive_equality():
    f = Filter.ilike("status", "published")
    assert f.matches({"status": "Published"})
    assert f.matches({"status": "PUBLISHED"})
    assert not f.matches({"status": "published-later"})
    assert not f.matches({"status": None})


def test_search_matches_either_column():
    f = Filter.search(("title", "description"), "BEACH")
    assert f.matches({"title": "Diani Beach Cottage", "description": None})
    assert f.matches({"title": "Cottage", "description": "a short walk to the beach"})
    assert not f.matches({"title": "Cottage", "description": "inland"})


def test_row_filter():
    rf = RowFilter("user_id", "u1")
    assert rf.matches({"user_id": "u1"})
    assert not rf.matches({"user_id": "u2"})
    assert not rf.matches(None)
    assert str(rf) == "user_id=eq.u1"
