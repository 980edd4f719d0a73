from mapscraper.normalize import (
    absolute_maps_url,
    clean_text,
    name_from_url,
    parse_coordinates,
    parse_count,
    parse_rating,
    strip_label_prefix,
)


def test_coordinates_prefer_viewport_segment():
    url = "https://www.google.com/maps/place/Foo+Bar/@-6.2,106.8,15z/data=!3d-6.3!4d106.9"
    assert parse_coordinates(url) == (-6.2, 106.8)


def test_coordinates_fall_back_to_data_tokens():
    url = "https://www.google.com/maps/place/Foo/data=!4m7!3m6!8m2!3d-6.2088!4d106.8456"
    assert parse_coordinates(url) == (-6.2088, 106.8456)


def test_coordinates_need_both_data_tokens():
    assert parse_coordinates("https://www.google.com/maps/place/Foo/data=!3d-6.2088") == (None, None)
    assert parse_coordinates(None) == (None, None)


def test_name_from_url_decodes_slug():
    assert name_from_url("https://www.google.com/maps/place/Foo+Bar/@-6.2,106.8,15z") == "Foo Bar"
    assert name_from_url("https://www.google.com/maps/place/Caf%C3%A9+Noir/data=!3d1.0") == "Café Noir"
    assert name_from_url("https://www.google.com/maps/search/coffee") is None


def test_clean_text_strips_icons_and_whitespace():
    assert clean_text("    Jl. Sudirman \n No. 5 ") == "Jl. Sudirman No. 5"
    assert clean_text("★​") is None
    assert clean_text("") is None


def test_parse_rating():
    assert parse_rating("4.5 stars") == 4.5
    assert parse_rating("4,3 stars 88 reviews") == 4.3
    assert parse_rating("Rated 4.1") == 4.1
    assert parse_rating("Blue Bottle", require_stars=True) is None
    assert parse_rating("12 stars") is None


def test_parse_count_handles_separators():
    assert parse_count("(1,152)") == 1152
    assert parse_count("1.152 reviews") == 1152
    assert parse_count("1 152") == 1152
    assert parse_count("no reviews") is None


def test_strip_label_prefix():
    assert strip_label_prefix("Address: Jl. Sudirman No. 5", "Address") == "Jl. Sudirman No. 5"
    assert strip_label_prefix("Jl. Sudirman No. 5", "Address") == "Jl. Sudirman No. 5"


def test_absolute_maps_url():
    assert absolute_maps_url("/maps/place/Foo") == "https://www.google.com/maps/place/Foo"
    assert absolute_maps_url("https://maps.google.com/x") == "https://maps.google.com/x"
    assert absolute_maps_url("javascript:void(0)") is None
