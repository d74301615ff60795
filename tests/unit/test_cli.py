"""Tests for the command-line entry point and subcommand handlers."""

import io
import json
from datetime import datetime, timezone
from unittest.mock import ANY, MagicMock, patch

import networkx as nx
import pytest

from qontrol.cli import cdf as cdf_cli
from qontrol.cli import profile as profile_cli
from qontrol.cli.cluster import render_psu_summary
from qontrol.cli.main import build_parser, main
from qontrol.cli.status import run_status
from qontrol.collectors.cdf import CdfCollectionResult
from qontrol.collectors.hardware import ClusterPsuResult
from qontrol.config import Config
from qontrol.data.cdf import ClusterCdfError, ProfiledCluster
from qontrol.data.models import PsuEntry
from qontrol.errors import QontrolError


@pytest.fixture
def api_client(profile_store):
    """Patches the client class used by the single-cluster commands."""
    with patch("qontrol.cli.cluster.QumuloClient") as client_cls:
        client = MagicMock()
        client.__enter__.return_value = client
        client_cls.from_profile.return_value = client
        yield client_cls, client


class TestParser:
    def test_global_flags_before_and_after_subcommand(self):
        parser = build_parser()
        assert parser.parse_args(["--json", "status"]).json is True
        assert parser.parse_args(["status", "--json"]).json is True
        assert parser.parse_args(["--timeout", "5", "cdf", "status"]).timeout == 5
        assert parser.parse_args(["cdf", "status", "--timeout", "7"]).timeout == 7

    def test_defaults(self):
        args = build_parser().parse_args(["status"])
        assert args.json is False
        assert args.quiet is False
        assert args.verbose == 0
        assert args.timeout == 30
        assert args.profile is None
        assert args.interval == 5

    def test_verbose_count(self):
        assert build_parser().parse_args(["status", "-vv"]).verbose == 2

    def test_profile_from_env(self, monkeypatch):
        monkeypatch.setenv("QONTROL_PROFILE", "B")
        assert build_parser().parse_args(["cluster", "info"]).profile == "B"
        assert build_parser().parse_args(["cluster", "info", "--profile", "C"]).profile == "C"

    def test_status_aliases(self):
        parser = build_parser()
        for alias in ("status", "st", "dashboard"):
            assert parser.parse_args([alias]).handler is run_status

    def test_interval_must_be_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["status", "--interval", "0"])

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])
        with pytest.raises(SystemExit):
            build_parser().parse_args(["snapshot"])

    def test_fs_ls_defaults_to_root(self):
        args = build_parser().parse_args(["fs", "ls"])
        assert args.path == "/"
        assert args.after is None


class TestMain:
    def test_errors_exit_one(self, profile_store, capsys):
        assert main(["profile", "remove", "nope"]) == 1
        assert "Error: profile 'nope' not found" in capsys.readouterr().err

    def test_no_default_profile(self, capsys):
        assert main(["cluster", "info"]) == 1
        assert "no default profile configured" in capsys.readouterr().err

    def test_explicit_config_path(self, profile_store, temp_data_dir, capsys):
        moved = temp_data_dir / "elsewhere.yaml"
        moved.write_text(profile_store.path.read_text())
        profile_store.path.unlink()

        assert main(["--config", str(moved), "profile", "list"]) == 0
        assert "  A (default)" in capsys.readouterr().out


class TestProfileCommands:
    def test_add_with_token(self, profile_store, capsys):
        code = main(["profile", "add", "D", "--host", "d.example.com", "--token", "tok-d", "--port", "9000"])

        assert code == 0
        assert capsys.readouterr().out == "Profile 'D' added.\n"
        reloaded = Config.load()
        assert reloaded.profiles["D"].host == "d.example.com"
        assert reloaded.profiles["D"].port == 9000
        assert reloaded.default_profile == "A"

    def test_add_as_default(self, profile_store, capsys):
        main(["profile", "add", "D", "--host", "d", "--token", "t", "--default"])
        assert "Set as default profile." in capsys.readouterr().out
        assert Config.load().default_profile == "D"

    def test_first_profile_becomes_default(self, capsys):
        main(["profile", "add", "only", "--host", "h", "--token", "t"])
        assert "Set as default profile." in capsys.readouterr().out

    def test_token_requires_host(self, profile_store, capsys):
        assert main(["profile", "add", "D", "--token", "t"]) == 1
        assert "--host is required" in capsys.readouterr().err

    def test_add_with_credentials(self, profile_store):
        with patch("qontrol.cli.profile.create_token", return_value="access-v1:minted") as create:
            code = main(
                ["profile", "add", "D", "--host", "d", "--username", "admin", "--password", "pw", "--insecure"]
            )

        assert code == 0
        create.assert_called_once_with("d", 8000, True, 30, "admin", "pw", "1year")
        assert Config.load().profiles["D"].token == "access-v1:minted"

    def test_list(self, profile_store, capsys):
        main(["profile", "list"])
        assert capsys.readouterr().out == "  A (default)\n  B\n  C\n"

    def test_list_json(self, profile_store, capsys):
        main(["profile", "list", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data[1] == {"name": "B", "host": "b.example.com", "port": 8443, "default": False}

    def test_list_empty(self, capsys):
        main(["profile", "list"])
        assert "No profiles configured" in capsys.readouterr().out

    def test_remove(self, profile_store, capsys):
        assert main(["profile", "remove", "B"]) == 0
        assert "B" not in Config.load().profiles

    def test_show_redacts_token(self, profile_store, capsys):
        main(["profile", "show"])
        out = capsys.readouterr().out
        assert "Profile: A (default)" in out
        assert "  Host:     a.example.com:8000" in out
        assert "  Token:    ****aaaaaaaa" in out
        assert "access-v1" not in out

    def test_show_uses_env_profile(self, profile_store, monkeypatch, capsys):
        monkeypatch.setenv("QONTROL_PROFILE", "B")
        main(["profile", "show", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "B"
        assert data["port"] == 8443
        assert data["token"] == "****bbbbbbbb"


class TestTokens:
    def test_redact_short_token(self):
        assert profile_cli.redact_token("abc") == "****"
        assert profile_cli.redact_token("0123456789") == "****23456789"

    def test_expiration(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert profile_cli.token_expiration("1year", now) == "2027-01-01T00:00:00Z"
        assert profile_cli.token_expiration("never", now) is None

    def test_invalid_expiry(self):
        with pytest.raises(QontrolError):
            profile_cli.token_expiration("forever")

    def test_create_token(self):
        client = MagicMock()
        client.__enter__.return_value = client
        client.who_am_i.return_value = {"id": 501}
        client.create_access_token.return_value = "access-v1:new"
        factory = MagicMock(return_value=client)

        token = profile_cli.create_token("h", 8000, False, 10, "admin", "pw", "never", client_factory=factory)

        assert token == "access-v1:new"
        factory.assert_called_once_with("h", 8000, insecure=False, timeout=10)
        client.login.assert_called_once_with("admin", "pw")
        client.create_access_token.assert_called_once_with("501", None)

    def test_create_token_without_user_id(self):
        client = MagicMock()
        client.__enter__.return_value = client
        client.who_am_i.return_value = {}
        with pytest.raises(QontrolError):
            profile_cli.create_token("h", 8000, False, 10, "u", "p", "never", client_factory=MagicMock(return_value=client))


class TestApiAndClusterCommands:
    def test_api_raw(self, api_client, capsys):
        client_cls, client = api_client
        client.request.return_value = {"ok": True}

        code = main(["api", "raw", "put", "/v1/x", "--body", '{"a": 1}', "--profile", "B"])

        assert code == 0
        client.request.assert_called_once_with("PUT", "/v1/x", body={"a": 1})
        profile = client_cls.from_profile.call_args[0][0]
        assert profile.name == "B"
        assert client_cls.from_profile.call_args[1] == {"timeout": 30}
        assert json.loads(capsys.readouterr().out) == {"ok": True}

    def test_api_raw_bad_body(self, api_client, capsys):
        assert main(["api", "raw", "POST", "/v1/x", "--body", "{nope"]) == 1
        assert "failed to parse --body as JSON" in capsys.readouterr().err
        api_client[1].request.assert_not_called()

    def test_cluster_info(self, api_client, capsys):
        client = api_client[1]
        client.get_cluster_settings.return_value = {"cluster_name": "prod"}
        client.get_version.return_value = {"revision_id": "Qumulo Core 7.2.3.2"}
        client.get_cluster_nodes.return_value = [{"id": 1, "node_name": "prod-1", "node_status": "online"}]

        main(["cluster", "info"])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "Cluster: prod"
        assert lines[1] == "Version: Qumulo Core 7.2.3.2"
        assert lines[2] == ""
        assert lines[3].split() == ["ID", "NODE_NAME", "NODE_STATUS"]
        assert lines[5].split() == ["1", "prod-1", "online"]

    def test_cluster_info_json(self, api_client, capsys):
        client = api_client[1]
        client.get_cluster_settings.return_value = {"cluster_name": "prod"}
        client.get_version.return_value = {}
        client.get_cluster_nodes.return_value = []

        main(["cluster", "info", "--json"])
        assert json.loads(capsys.readouterr().out) == {"cluster": {"cluster_name": "prod"}, "version": {}, "nodes": []}

    def test_server_error(self, api_client, capsys):
        api_client[1].get_cluster_settings.side_effect = QontrolError("API error (HTTP 500): boom")
        assert main(["cluster", "info"]) == 1
        assert "Error: API error (HTTP 500): boom" in capsys.readouterr().err


class TestSnapshotCommands:
    def snapshots(self, client):
        client.get_snapshots.return_value = {
            "entries": [
                {"id": 2, "name": "2_daily", "timestamp": "t2", "directory_name": "/b"},
                {"id": 1, "name": "1_daily", "timestamp": "t1", "directory_name": "/a"},
            ]
        }
        client.get_snapshot_capacity_per_snapshot.return_value = {"entries": [{"id": 2, "capacity_used_bytes": "1024"}]}

    def test_list(self, api_client, capsys):
        self.snapshots(api_client[1])
        main(["snapshot", "list"])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].split() == ["ID", "NAME", "TIMESTAMP", "DIRECTORY_NAME", "CAPACITY"]
        assert lines[2].split() == ["2", "2_daily", "t2", "/b", "1.0", "KB"]
        assert lines[3].split() == ["1", "1_daily", "t1", "/a", "0", "B"]

    def test_list_json_merges_capacity(self, api_client, capsys):
        self.snapshots(api_client[1])
        main(["snapshot", "list", "--json"])

        entries = json.loads(capsys.readouterr().out)["entries"]
        assert entries[0]["capacity_used_bytes"] == "1024"
        assert "capacity_used_bytes" not in entries[1]

    def test_list_empty(self, api_client, capsys):
        api_client[1].get_snapshots.return_value = {"entries": []}
        api_client[1].get_snapshot_capacity_per_snapshot.return_value = {"entries": []}
        main(["snapshot", "list"])
        assert capsys.readouterr().out == "No snapshots found.\n"

    def test_list_malformed(self, api_client, capsys):
        api_client[1].get_snapshots.return_value = {"unexpected": True}
        api_client[1].get_snapshot_capacity_per_snapshot.return_value = {"entries": []}
        assert main(["snapshot", "list"]) == 1

    def test_show(self, api_client, capsys):
        api_client[1].get_snapshot.return_value = {
            "id": 7,
            "name": "7_hourly",
            "timestamp": "2026-10-18T00:00:00Z",
            "source_file_id": "2",
            "directory_name": "/home",
            "created_by_policy": True,
            "expiration": "",
            "in_delete": False,
        }

        main(["snapshot", "show", "7"])

        out = capsys.readouterr().out
        api_client[1].get_snapshot.assert_called_once_with(7)
        assert out.startswith("Snapshot 7\n")
        assert "  Policy:      policy" in out
        assert "  Expiration:  never" in out
        assert "  Deleting:    false" in out

    def test_show_rejects_non_integer_id(self, api_client):
        with pytest.raises(SystemExit):
            main(["snapshot", "show", "abc"])

    def test_policies(self, api_client, capsys):
        api_client[1].get_snapshot_policies.return_value = {
            "entries": [
                {"id": 1, "policy_name": "hourly", "enabled": True, "source_file_id": "2",
                 "schedule": {"expiration_time_to_live": "7days"}},
                {"id": 2, "policy_name": "archive", "enabled": False, "source_file_id": "3", "schedule": {}},
            ]
        }
        main(["snapshot", "policies"])

        lines = capsys.readouterr().out.splitlines()
        assert lines[2].split() == ["1", "hourly", "enabled", "2", "7days"]
        assert lines[3].split() == ["2", "archive", "disabled", "3", "never"]

    def test_no_policies(self, api_client, capsys):
        api_client[1].get_snapshot_policies.return_value = {"entries": []}
        main(["snapshot", "policies"])
        assert capsys.readouterr().out == "No snapshot policies found.\n"


class TestFsCommands:
    def test_ls_sorted_with_paging_hint(self, api_client, capsys):
        api_client[1].get_file_entries.return_value = {
            "files": [
                {"name": "beta", "type": "FS_FILE_TYPE_FILE"},
                {"name": "Alpha", "type": "FS_FILE_TYPE_DIRECTORY"},
            ],
            "paging": {"next": "cursor-2"},
        }

        main(["fs", "ls", "/home", "--limit", "2", "--after", "cursor-1"])

        captured = capsys.readouterr()
        api_client[1].get_file_entries.assert_called_once_with("/home", after="cursor-1", limit=2)
        assert captured.out == "Alpha/\nbeta\n"
        assert '(more results available, use --after "cursor-2" to continue)' in captured.err

    def test_ls_empty(self, api_client, capsys):
        api_client[1].get_file_entries.return_value = {"files": [], "paging": {}}
        main(["fs", "ls"])
        captured = capsys.readouterr()
        assert captured.out == "(empty directory)\n"
        assert captured.err == ""

    def test_stat(self, api_client, capsys):
        api_client[1].get_file_attr.return_value = {
            "path": "/home/a.txt",
            "type": "FS_FILE_TYPE_FILE",
            "size": "2048",
            "id": "42",
            "owner": "500",
            "mode": "0644",
            "modification_time": "2026-10-18T00:00:00Z",
            "creation_time": "2026-10-01T00:00:00Z",
        }
        main(["fs", "stat", "/home/a.txt"])

        out = capsys.readouterr().out
        assert "Type:     file\n" in out
        assert "Size:     2.0 KB\n" in out
        assert "ID:       42\n" in out

    def test_stat_without_size(self, api_client, capsys):
        api_client[1].get_file_attr.return_value = {"type": "FS_FILE_TYPE_DIRECTORY"}
        main(["fs", "stat", "/home"])
        out = capsys.readouterr().out
        assert "Path:     /home\n" in out
        assert "Size:     -\n" in out


def psu_results():
    return [
        ClusterPsuResult(
            "A",
            node_count=2,
            psus=[PsuEntry(1, "PSU1", "left", "GOOD"), PsuEntry(2, "PSU2", "right", "FAILED")],
        ),
        ClusterPsuResult("B", error="connection refused"),
    ]


class TestHwPsu:
    def test_unhealthy_exit_code(self, profile_store, capsys):
        with patch("qontrol.cli.cluster.PsuCollector") as collector_cls:
            collector_cls.return_value.collect_all.return_value = psu_results()
            code = main(["hw", "psu", "--cluster", "A", "--cluster", "B"])

        assert code == 1
        collector_cls.assert_called_once_with(timeout=30)
        collector_cls.return_value.collect_all.assert_called_once_with(ANY, ["A", "B"])
        out = capsys.readouterr().out
        assert "✗ 1 unhealthy" in out
        assert "error: connection refused" in out
        assert "  A node 2 PSU2 (right) - FAILED" in out

    def test_healthy_exit_code(self, profile_store, capsys):
        healthy = [ClusterPsuResult("A", node_count=1, psus=[PsuEntry(1, "PSU1", "left", "GOOD")])]
        with patch("qontrol.cli.cluster.PsuCollector") as collector_cls:
            collector_cls.return_value.collect_all.return_value = healthy
            assert main(["hw", "psu"]) == 0
        assert "✓ healthy" in capsys.readouterr().out

    def test_json(self, profile_store, capsys):
        with patch("qontrol.cli.cluster.PsuCollector") as collector_cls:
            collector_cls.return_value.collect_all.return_value = psu_results()
            main(["hw", "psu", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data[0]["unhealthy_count"] == 1
        assert data[1]["error"] == "connection refused"

    def test_summary_layout(self):
        lines = render_psu_summary(psu_results()).splitlines()
        assert lines[0].split() == ["CLUSTER", "NODES", "PSUS", "HEALTHY", "UNHEALTHY", "STATUS"]
        assert lines[1] == "-" * 72
        assert lines[2].split() == ["A", "2", "2", "1", "1", "✗", "1", "unhealthy"]
        assert lines[3].split()[:5] == ["B", "-", "-", "-", "-"]

    def test_summary_verbose_lists_every_psu(self):
        text = render_psu_summary(psu_results(), verbose=True)
        assert "── A ──" in text
        assert "Unhealthy PSUs:" not in text
        assert "PSU1" in text

    def test_long_error_truncated(self):
        text = render_psu_summary([ClusterPsuResult("A", error="x" * 50)])
        assert "error: " + "x" * 29 + "…" in text


class TestCdfStatus:
    def run(self, argv, result, config):
        args = build_parser().parse_args(argv)
        collector = MagicMock()
        collector.collect_all.return_value = result
        out = io.StringIO()
        code = cdf_cli.run_cdf_status(args, config, out=out, collector=collector)
        return code, out.getvalue(), collector

    def test_errors_are_warnings(self, profile_store, capsys):
        result = CdfCollectionResult(graph=nx.MultiDiGraph(), errors=[ClusterCdfError("B", "timed out")])

        code, out, collector = self.run(["cdf", "status", "--filter", "alpha"], result, profile_store)

        assert code == 0
        assert out == "(no CDF relationships found)\n"
        assert "warning: B: timed out" in capsys.readouterr().err
        collector.collect_all.assert_called_once_with(profile_store, None, cluster_filter="alpha")

    def test_json(self, profile_store):
        graph = nx.MultiDiGraph()
        graph.add_node(0, node=ProfiledCluster(name="alpha", uuid="u1", address="alpha.example.com"))
        code, out, _ = self.run(["cdf", "status", "--json"], CdfCollectionResult(graph=graph), profile_store)

        data = json.loads(out)
        assert data["edges"] == []
        assert len(data["nodes"]) == 1

    def test_detail_appends_listing(self, profile_store):
        graph = nx.MultiDiGraph()
        graph.add_node(0, node=ProfiledCluster(name="alpha", uuid="u1", address="alpha.example.com"))
        _, plain, _ = self.run(["cdf", "status"], CdfCollectionResult(graph=graph), profile_store)
        _, detail, _ = self.run(["cdf", "status", "--detail"], CdfCollectionResult(graph=graph), profile_store)

        assert detail.startswith(plain)
        assert len(detail) > len(plain)

    def test_cluster_selection_passed_through(self, profile_store):
        _, _, collector = self.run(
            ["cdf", "status", "--cluster", "A", "--cluster", "C"], CdfCollectionResult(graph=nx.MultiDiGraph()), profile_store
        )
        collector.collect_all.assert_called_once_with(profile_store, ["A", "C"], cluster_filter=None)


class TestStatusCommand:
    def test_wires_flags_through(self, profile_store):
        with patch("qontrol.cli.status.FleetCollector") as fleet_cls, patch(
            "qontrol.cli.status.StatusWatcher"
        ) as watcher_cls:
            watcher_cls.return_value.run.return_value = 0
            code = main(
                ["status", "--cluster", "A", "--watch", "--interval", "2", "--no-cache", "--timing", "--json"]
            )

        assert code == 0
        fleet_cls.assert_called_once_with(ANY, timeout=30, no_cache=True, watch_mode=True)
        kwargs = watcher_cls.call_args[1]
        assert kwargs["profile_filters"] == ["A"]
        assert kwargs["json_mode"] is True
        assert kwargs["watch"] is True
        assert kwargs["interval"] == 2
        assert kwargs["show_timing"] is True

    def test_unknown_cluster_filter(self, profile_store, capsys):
        assert main(["status", "--cluster", "nope", "--no-cache"]) == 1
        assert "Error:" in capsys.readouterr().err
