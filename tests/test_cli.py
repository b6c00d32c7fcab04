"""Tests for the command-line driver."""

import pandas as pd
import pytest
import yaml

from wavepanel.cli import main, parse_args


@pytest.fixture
def survey_dir(tmp_path, individual_table, family_tables, concept_spec):
    individual_table.to_csv(tmp_path / "IND.csv", index=False)
    for wave, table in family_tables.items():
        table.to_csv(tmp_path / f"FAM{wave}.csv", index=False)
    (tmp_path / "panel.yaml").write_text(yaml.safe_dump({
        "waves": [1968, 1969, 1983],
        "settings": {"role_gate": {"presence_concept": "family_age"}},
        "concepts": concept_spec,
    }))
    return tmp_path


def cli_args(survey_dir, output):
    return [
        "--config", str(survey_dir / "panel.yaml"),
        "--individual", str(survey_dir / "IND.csv"),
        "--family-pattern", str(survey_dir / "FAM{wave}.csv"),
        "--output", str(output),
    ]


class TestCLI:
    """Test the wavepanel command."""

    def test_parse_args(self):
        args = parse_args([
            "--config", "c.yaml",
            "--individual-pattern", "IND{wave}.csv",
            "--family-pattern", "FAM{wave}.csv",
            "--output", "out.parquet",
            "--workers", "4",
        ])
        assert args.workers == 4
        assert args.individual is None
        assert args.individual_pattern == "IND{wave}.csv"

    def test_individual_source_required(self):
        with pytest.raises(SystemExit):
            parse_args(["--config", "c.yaml", "--family-pattern", "F", "--output", "o.csv"])

    def test_writes_csv(self, survey_dir):
        output = survey_dir / "out" / "panel.csv"
        assert main(cli_args(survey_dir, output) + ["--workers", "2"]) == 0

        panel = pd.read_csv(output)
        assert len(panel) == 11
        assert panel["year"].tolist()[0] == 1968
        assert not panel.duplicated(["person_id", "year"]).any()

    def test_writes_parquet(self, survey_dir):
        output = survey_dir / "panel.parquet"
        assert main(cli_args(survey_dir, output)) == 0
        panel = pd.read_parquet(output)
        assert str(panel["family_age"].dtype) == "Int64"

    def test_missing_raw_column_exits_nonzero(self, survey_dir, family_tables, caplog):
        family_tables[1969].drop(columns=["F69INC"]).to_csv(survey_dir / "FAM1969.csv", index=False)
        output = survey_dir / "panel.csv"

        assert main(cli_args(survey_dir, output)) == 1
        assert not output.exists()
        assert "F69INC" in caplog.text

    def test_missing_file_exits_nonzero(self, survey_dir):
        (survey_dir / "FAM1983.csv").unlink()
        assert main(cli_args(survey_dir, survey_dir / "panel.csv")) == 1

    def test_unsupported_format_exits_nonzero(self, survey_dir, caplog):
        (survey_dir / "IND.xlsx").write_text("not a table")
        args = cli_args(survey_dir, survey_dir / "panel.csv")
        args[args.index("--individual") + 1] = str(survey_dir / "IND.xlsx")

        assert main(args) == 1
        assert "Unsupported raw table format" in caplog.text
