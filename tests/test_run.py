"""
Tests for the command-line runner.

Validates:
1. Example creation and --validate-only
2. Full run writing CSV, JSON and plots
3. Recording of published messages
4. Error exit codes
"""

import json

import pytest

from magpair import run
from magpair.io_cfg import create_example_config, load_config


@pytest.fixture
def example_path(tmp_path):
    path = tmp_path / "capsule.yaml"
    create_example_config(str(path))
    return path


class TestMain:
    """Tests for main() exit codes and outputs."""

    def test_create_example(self, tmp_path):
        path = tmp_path / "sub" / "example.yaml"
        assert run.main(['--create-example', str(path)]) == 0
        assert path.exists()

    def test_validate_only(self, example_path, capsys):
        assert run.main([str(example_path), '--validate-only']) == 0
        assert "validated successfully" in capsys.readouterr().out

    def test_missing_config_file(self, tmp_path):
        assert run.main([str(tmp_path / "missing.yaml")]) == 1

    def test_no_config_given(self):
        assert run.main([]) == 1

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("bodies: []\n")
        assert run.main([str(path)]) == 1

    def test_full_run(self, example_path, tmp_path):
        out = tmp_path / "results"
        assert run.main([str(example_path), '--output-dir', str(out)]) == 0

        assert (out / "interaction.csv").exists()
        assert (out / "interaction.png").exists()
        assert (out / "separation.png").exists()

        with open(out / "diagnostics.json") as f:
            data = json.load(f)
        assert len(data['times']) == 500
        assert data['summary']['interaction']['max_force'] > 0.0

    def test_no_plots(self, example_path, tmp_path):
        out = tmp_path / "results"
        assert run.main([str(example_path), '--output-dir', str(out), '--no-plots']) == 0

        assert (out / "interaction.csv").exists()
        assert not (out / "interaction.png").exists()


class TestRunSimulation:
    """Tests for run_simulation() results."""

    def test_published_messages_recorded(self, example_path):
        config = load_config(str(example_path))
        config['numerics']['steps'] = 100

        results = run.run_simulation(config)

        published = results['summary']['published']
        assert published['staged'] > 0
        assert published['wrench_received'] <= published['staged']
        assert len(results['published']['wrench']) == published['wrench_received']
        assert results['skipped_ticks'] == 0
        assert not results['interrupted']

    def test_without_publishing(self, example_path):
        config = load_config(str(example_path))
        config['publish'].should_publish = False
        config['numerics']['steps'] = 20

        results = run.run_simulation(config)

        assert results['summary']['published']['staged'] == 0
        assert results['published'] == {'wrench': [], 'mfs': []}
        assert results['history']['valid'].all()
