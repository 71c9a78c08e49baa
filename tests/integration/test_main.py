"""
Integration Tests for the batch entrypoint.

Tests cover:
    - CSV sources on disk through FileDatasetLoader
    - Exit status, per-year outputs and REPORT.md
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from meps_diabetes_cohort import main as main_module
from meps_diabetes_cohort.config import PipelineConfig, YearSpec
from meps_diabetes_cohort.loaders import BigQueryDatasetLoader, FileDatasetLoader


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's MEPS_* variables out of config defaults."""
    for name in ("MEPS_SOURCE_DIR", "MEPS_OUTPUT_DIR", "MEPS_BQ_DATASET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def source_dir(tmp_path: Path, make_medical, make_panel, panel_row) -> Path:
    src = tmp_path / "meps"
    src.mkdir()
    make_medical([("10001101", "E11"), ("10001102", "I10")]).to_csv(src / "h214.csv", index=False)
    make_panel([panel_row("10001101"), panel_row("10001102")]).to_csv(src / "h223.csv", index=False)
    return src


class TestMain:
    def test_successful_run(self, source_dir: Path, tmp_path: Path) -> None:
        # Arrange
        out_dir = tmp_path / "out"

        # Act
        code = main_module.main(
            ["--years", "2019", "--source-dir", str(source_dir), "--output-dir", str(out_dir), "--print-tables"]
        )

        # Assert
        assert code == 0
        extract = pd.read_csv(out_dir / "diabetes_cohort_2019.csv", dtype={"DUPERSID": str})
        assert extract["DUPERSID"].tolist() == ["10001101"]
        report = (out_dir / "REPORT.md").read_text(encoding="utf-8")
        assert "- 2019: ok, 1 rows (1 persons)" in report
        assert "`diabetes_cohort_2019.csv`" in report

    def test_failed_year_sets_exit_code(self, source_dir: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "out"

        code = main_module.main(
            ["--years", "2018", "2019", "--source-dir", str(source_dir), "--output-dir", str(out_dir)]
        )

        assert code == 1
        assert (out_dir / "diabetes_cohort_2019.csv").exists()
        assert not (out_dir / "diabetes_cohort_2018.csv").exists()
        report = (out_dir / "REPORT.md").read_text(encoding="utf-8")
        assert "- 2018: FAILED at `load` (DatasetNotFound)" in report

    def test_unknown_year_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="1990"):
            main_module.main(["--years", "1990", "--output-dir", str(tmp_path)])


class TestBuildLoader:
    def test_file_loader_by_default(self, tmp_path: Path) -> None:
        config = PipelineConfig(years=(YearSpec(2019, "h214", "h223"),), source_dir=tmp_path, output_dir=tmp_path)

        loader = main_module.build_loader(config)

        assert isinstance(loader, FileDatasetLoader)
        assert loader.source_dir == tmp_path

    def test_bigquery_loader_when_dataset_set(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        created: list[str] = []

        def _fake_client(location: str = "US") -> object:
            created.append(location)
            return object()

        monkeypatch.setattr(main_module, "create_bq_client", _fake_client)
        config = PipelineConfig(
            years=(YearSpec(2019, "h214", "h223"),),
            source_dir=tmp_path,
            output_dir=tmp_path,
            bq_dataset="proj.meps",
            bq_location="EU",
        )

        loader = main_module.build_loader(config)

        assert isinstance(loader, BigQueryDatasetLoader)
        assert loader.dataset == "proj.meps"
        assert created == ["EU"]
