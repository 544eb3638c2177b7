from cachemux.extras import export_extras, output_folder_name
from cachemux.scanner import scan_title
from cachemux.schemas import VideoInfo


def test_folder_name_with_group():
    info = VideoInfo(uname="up", title="Part 2", groupTitle="Series")

    assert output_folder_name(info) == "up - Series - Part 2"


def test_folder_name_without_distinct_group():
    assert output_folder_name(VideoInfo(uname="up", title="Clip", groupTitle="Clip")) == "up - Clip"
    assert output_folder_name(VideoInfo(uname="up", title="Clip")) == "up - Clip"


def test_folder_name_replaces_path_separators():
    assert output_folder_name(VideoInfo(uname="a/b", title="c\\d")) == "a_b - c_d"


def test_folder_name_falls_back_to_title_id():
    assert output_folder_name(VideoInfo(), "12345") == "12345"


def test_export_copies_cover_and_metadata(cached_title, cache_root, tmp_path):
    layout = scan_title(cache_root, "12345")
    info = VideoInfo(coverPath="cover.jpg")
    target = tmp_path / "export"
    target.mkdir()

    written = export_extras(layout, info, target)

    assert sorted(p.name for p in written) == ["cover.jpg", "videoInfo.json"]
    assert (target / "cover.jpg").read_bytes() == (cached_title / "cover.jpg").read_bytes()
    assert (target / "videoInfo.json").read_bytes() == (cached_title / ".videoInfo").read_bytes()


def test_export_finds_local_copy_of_foreign_cover_path(cached_title, cache_root, tmp_path):
    layout = scan_title(cache_root, "12345")
    info = VideoInfo(coverPath="/storage/emulated/0/Android/data/cover.jpg", groupCoverPath="/elsewhere/missing.png")

    written = export_extras(layout, info, tmp_path)

    assert sorted(p.name for p in written) == ["cover.jpg", "videoInfo.json"]
