"""
CLI end-to-end tests against a temporary state directory.
"""

import pytest

from cli.main import main


@pytest.fixture
def state(tmp_path, monkeypatch):
    monkeypatch.delenv("AGRI_LEDGER_AUTHORITY", raising=False)
    monkeypatch.delenv("AGRI_LEDGER_STATE", raising=False)
    out = str(tmp_path / "state")
    assert main(["init", "--out", out, "--authority", "registry"]) == 0
    return out


def create_corn(out):
    return main([
        "create", "--out", out, "--actor", "alice",
        "--name", "Corn", "--volume", "500", "--location", "Farm A", "--tag", "organic",
    ])


class TestCli:
    def test_init_requires_authority(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AGRI_LEDGER_AUTHORITY", raising=False)
        with pytest.raises(SystemExit):
            main(["init", "--out", str(tmp_path / "s")])

    def test_commands_require_initialised_state(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["show", "--out", str(tmp_path / "nothing"), "--actor", "alice", "--sequence-id", "1"])

    def test_create_and_show(self, state, capsys):
        assert create_corn(state) == 0
        assert "sequence_id: 1" in capsys.readouterr().out
        assert main(["show", "--out", state, "--actor", "alice", "--sequence-id", "1"]) == 0
        assert '"cultivatorAddress": "alice"' in capsys.readouterr().out

    def test_verify_prints_report(self, state, capsys):
        create_corn(state)
        capsys.readouterr()
        assert main(["verify", "--out", state, "--actor", "alice", "--sequence-id", "1", "--cultivator", "alice"]) == 0
        assert '"isAuthentic": true' in capsys.readouterr().out

    def test_failure_exit_code_and_message(self, state, capsys):
        create_corn(state)
        capsys.readouterr()
        code = main(["transfer", "--out", state, "--actor", "bob", "--sequence-id", "1", "--recipient", "bob"])
        assert code == 1
        assert "OwnershipMismatch (306)" in capsys.readouterr().out

    def test_show_requires_verify_standing(self, state, capsys):
        create_corn(state)
        capsys.readouterr()
        assert main(["show", "--out", state, "--actor", "mallory", "--sequence-id", "1"]) == 1
        out = capsys.readouterr().out
        assert "PermissionDenied (305)" in out
        assert "cultivatorAddress" not in out

    def test_show_requires_actor(self, state):
        with pytest.raises(SystemExit):
            main(["show", "--out", state, "--sequence-id", "1"])

    def test_each_tag_flag_is_one_tag(self, state, capsys):
        create_corn(state)
        capsys.readouterr()
        argv = ["append-tags", "--out", state, "--actor", "alice", "--sequence-id", "1",
                "--tag", "grade A, dried", "--tag", "heirloom"]
        assert main(argv) == 0
        assert "tags: organic, grade A, dried, heirloom" in capsys.readouterr().out

    def test_empty_tag_rejected(self, state, capsys):
        create_corn(state)
        capsys.readouterr()
        argv = ["append-tags", "--out", state, "--actor", "alice", "--sequence-id", "1",
                "--tag", "heirloom", "--tag", ""]
        assert main(argv) == 1
        assert "MetadataFormatError (308)" in capsys.readouterr().out

    def test_lifecycle_and_journal(self, state, capsys):
        create_corn(state)
        assert main(["modify", "--out", state, "--actor", "alice", "--sequence-id", "1",
                     "--name", "Corn", "--volume", "650", "--location", "Farm B", "--tag", "fresh"]) == 0
        assert main(["revoke", "--out", state, "--actor", "alice", "--sequence-id", "1", "--target", "bob"]) == 0
        assert main(["restrict", "--out", state, "--actor", "registry", "--sequence-id", "1"]) == 0
        assert main(["purge", "--out", state, "--actor", "alice", "--sequence-id", "1"]) == 1
        capsys.readouterr()
        assert main(["verify-journal", "--out", state]) == 0
        assert "entries: 4" in capsys.readouterr().out
