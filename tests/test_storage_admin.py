import pytest

from scripts.storage_admin import main


@pytest.fixture(autouse=True)
def no_metrics_server(monkeypatch):
    started = []
    monkeypatch.setattr("scripts.storage_admin.serve_metrics", started.append)
    return started


def test_store_prints_url(storage, make_file, capsys):
    source = make_file("report.pdf", 64)

    code = main(["store", str(source), "--path", "reports/2024"], storage=storage)

    assert code == 0
    assert capsys.readouterr().out.strip() == (
        "https://s3.amazonaws.com/test-bucket/reports/2024/report.pdf"
    )


def test_retrieve_prints_local_path(storage, mock_storage, capsys):
    mock_storage.add_object("test-bucket", "docs/a.txt", b"hello")

    code = main(["retrieve", "docs/a.txt"], storage=storage)

    assert code == 0
    assert capsys.readouterr().out.strip().endswith("a.txt")


def test_mkdir_and_rmdir(storage, mock_storage, capsys):
    assert main(["mkdir", "reports"], storage=storage) == 0
    assert ("test-bucket", "reports/") in mock_storage.objects

    assert main(["rmdir", "reports"], storage=storage) == 0
    assert ("test-bucket", "reports/") not in mock_storage.objects


def test_remove(storage, mock_storage):
    mock_storage.add_object("test-bucket", "a.txt", b"a")

    assert main(["remove", "a.txt"], storage=storage) == 0
    assert mock_storage.objects == {}


def test_clean(storage):
    assert main(["clean"], storage=storage) == 0


def test_wipe_requires_confirmation(storage, mock_storage, capsys):
    mock_storage.add_object("test-bucket", "keep.txt", b"k")

    code = main(["wipe"], storage=storage)

    assert code == 1
    assert "[DRY-RUN]" in capsys.readouterr().out
    assert mock_storage.calls == []


def test_wipe_with_yes(storage, mock_storage, capsys):
    for index in range(3):
        mock_storage.add_object("test-bucket", f"{index}.txt", b"x")

    code = main(["wipe", "--yes"], storage=storage)

    assert code == 0
    assert "Deleted 3 objects and versions" in capsys.readouterr().out
    assert mock_storage.objects == {}


def test_storage_error_exits_with_2(storage, capsys):
    code = main(["retrieve", "missing/file.txt"], storage=storage)

    assert code == 2
    assert "error:" in capsys.readouterr().err


def test_metrics_port_starts_server(storage, no_metrics_server):
    main(["--metrics-port", "9105", "clean"], storage=storage)

    assert no_metrics_server == [9105]


def test_log_level_passed_to_logging_setup(storage, monkeypatch):
    levels = []
    monkeypatch.setattr("scripts.storage_admin.setup_logging", levels.append)

    main(["--log-level", "DEBUG", "clean"], storage=storage)

    assert levels == ["DEBUG"]
