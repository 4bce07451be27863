import json

from nethermind.txray.labels import load_labels, load_labels_file


def test_label_precedence(tmp_path, random_address):
    shared, user_only = random_address(), random_address()

    user_file = tmp_path / "user.json"
    user_file.write_text(json.dumps({shared: "User", user_only: "User Only"}))
    project_file = tmp_path / "project.json"
    project_file.write_text(json.dumps({shared.lower(): "Project"}))
    custom_file = tmp_path / "custom.json"
    custom_file.write_text(json.dumps({shared: "Custom"}))

    builtin = {shared: "Builtin"}

    assert load_labels(builtin)[shared.lower()] == "Builtin"
    assert load_labels(builtin, [user_file, project_file])[shared.lower()] == "Project"

    labels = load_labels(builtin, [user_file, project_file], custom_file)
    assert labels[shared.lower()] == "Custom"
    assert labels[user_only.lower()] == "User Only"


def test_invalid_label_files(tmp_path, caplog):
    (tmp_path / "list.json").write_text("[]")
    (tmp_path / "broken.json").write_text("{")
    (tmp_path / "mixed.json").write_text(json.dumps({"0xABC": "Name", "0xDEF": 12}))

    assert load_labels_file(tmp_path / "missing.json") == {}
    assert load_labels_file(tmp_path / "list.json") == {}
    assert load_labels_file(tmp_path / "broken.json") == {}
    assert load_labels_file(tmp_path / "mixed.json") == {"0xabc": "Name"}
    assert "expected object" in caplog.text
