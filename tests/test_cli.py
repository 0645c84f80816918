from click.testing import CliRunner

from brizzo.api import cli


def test_local_exploration(tmp_path):
    canvas = tmp_path / "map.png"
    result = CliRunner().invoke(
        cli, ["local", "HI", "--shape", "hex", "--quiet", "--canvas", str(canvas)]
    )

    assert result.exit_code == 0, result.output
    assert "探索完了" in result.output
    assert "部屋数: 32" in result.output
    assert canvas.exists()


def test_local_rejects_empty_text():
    result = CliRunner().invoke(cli, ["local", ""])
    assert result.exit_code == 2


def test_explore_reports_connection_errors():
    result = CliRunner().invoke(
        cli, ["explore", "demo", "--api-url", "http://127.0.0.1:1/api", "--quiet"]
    )
    assert result.exit_code == 1
    assert "エラー" in result.output


def test_local_text_with_spaces():
    result = CliRunner().invoke(cli, ["local", "HI THERE", "--quiet"])

    assert result.exit_code == 0, result.output
    assert "部屋数: 144" in result.output
