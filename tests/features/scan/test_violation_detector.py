from unittest.mock import MagicMock, patch

import pytest

from app.features.scan.exceptions import DetectorError
from app.features.scan.schemas.scan import ScanSummary, Violation
from app.features.scan.services.detection.axe_detector import AxeSeleniumDetector
from app.features.scan.services.detection.violation_detector import (
    WCAG_RULE_TAGS,
    ViolationDetector,
    normalize_violation,
    normalize_violations,
)
from tests.features.scan.scan_stubs import AXE_VIOLATIONS


class TestNormalizeViolation:

    def test_axe_core_entry(self):
        violation = normalize_violation(AXE_VIOLATIONS[0])

        assert violation.rule_id == "image-alt"
        assert violation.impact == "critical"
        assert violation.help_text == "Images must have alternate text"
        assert violation.help_url == "https://dequeuniversity.com/rules/axe/4.8/image-alt"
        assert violation.affected_element_count == 2

    def test_camel_case_entry(self):
        violation = normalize_violation({
            "ruleId": "label",
            "impact": "moderate",
            "helpText": "Form elements must have labels",
            "affectedElementCount": 3,
        })

        assert violation.rule_id == "label"
        assert violation.help_text == "Form elements must have labels"
        assert violation.affected_element_count == 3
        assert violation.description == ""

    @pytest.mark.parametrize("impact", [None, "", "catastrophic"])
    def test_unrecognized_impact_is_unknown(self, impact):
        violation = normalize_violation({"id": "region", "impact": impact, "nodes": []})
        assert violation.impact == "unknown"

    def test_missing_rule_id(self):
        with pytest.raises(DetectorError):
            normalize_violation({"impact": "minor", "nodes": []})

    def test_not_a_mapping(self):
        with pytest.raises(DetectorError):
            normalize_violation(["image-alt"])

    def test_negative_count_is_clamped(self):
        assert normalize_violation({"id": "x", "nodes": -4}).affected_element_count == 0


class TestNormalizeViolations:

    def test_preserves_detector_order(self):
        violations = normalize_violations(list(reversed(AXE_VIOLATIONS)))
        assert [v.rule_id for v in violations] == ["color-contrast", "image-alt"]

    def test_none_is_empty(self):
        assert normalize_violations(None) == []

    def test_non_list_output(self):
        with pytest.raises(DetectorError):
            normalize_violations({"violations": []})


def test_violation_serializes_camel_case():
    payload = normalize_violation(AXE_VIOLATIONS[1]).model_dump(by_alias=True)
    assert set(payload) == {"ruleId", "impact", "description", "helpText", "helpUrl", "affectedElementCount"}


def test_summary_counts_by_impact():
    violations = normalize_violations(AXE_VIOLATIONS) + [
        Violation(rule_id="region", impact="unknown"),
        Violation(rule_id="list", impact="minor"),
    ]

    summary = ScanSummary.from_violations(violations)

    assert summary.total == 4
    assert (summary.critical, summary.serious, summary.moderate, summary.minor) == (1, 1, 0, 1)
    assert summary.critical + summary.serious + summary.moderate + summary.minor <= summary.total


def test_detect_opens_and_closes_environment():
    class RecordingDetector(ViolationDetector):
        def run(self, environment, url):
            assert environment == "<html></html>"
            return AXE_VIOLATIONS

    violations = RecordingDetector().detect("<html></html>", "https://example.com")
    assert [v.rule_id for v in violations] == ["image-alt", "color-contrast"]


class TestAxeSeleniumDetector:

    @pytest.fixture
    def mock_driver(self):
        return MagicMock()

    @pytest.fixture
    def detector(self, mock_driver):
        detector = AxeSeleniumDetector(driver_path="/usr/bin/chromedriver")
        detector._create_driver = MagicMock(return_value=mock_driver)
        return detector

    def test_environment_loads_markup_and_quits(self, detector, mock_driver):
        with detector.environment("<html><body>Hi</body></html>", "https://example.com/page") as driver:
            assert driver is mock_driver

        mock_driver.get.assert_called_once_with("about:blank")
        script_args = mock_driver.execute_script.call_args[0]
        assert script_args[1:] == ("<html><body>Hi</body></html>", "https://example.com/page")
        mock_driver.quit.assert_called_once()

    def test_environment_quits_when_run_fails(self, detector, mock_driver):
        with pytest.raises(RuntimeError):
            with detector.environment("<html></html>", "https://example.com"):
                raise RuntimeError("axe crashed")

        mock_driver.quit.assert_called_once()

    def test_browser_start_failure(self, detector):
        detector._create_driver.side_effect = RuntimeError("chrome not found")

        with pytest.raises(DetectorError, match="Could not start browser session"):
            with detector.environment("<html></html>", "https://example.com"):
                pass

    def test_run_limits_rules_to_wcag_a_and_aa(self, detector, mock_driver):
        with patch("app.features.scan.services.detection.axe_detector.Axe") as mock_axe:
            mock_axe.return_value.run.return_value = {"violations": AXE_VIOLATIONS}

            raw = detector.run(mock_driver, "https://example.com")

        mock_axe.assert_called_once_with(mock_driver)
        mock_axe.return_value.inject.assert_called_once()
        options = mock_axe.return_value.run.call_args.kwargs["options"]
        assert options == {"runOnly": {"type": "tag", "values": list(WCAG_RULE_TAGS)}}
        assert raw == AXE_VIOLATIONS

    def test_run_failure_is_detector_error(self, detector, mock_driver):
        with patch("app.features.scan.services.detection.axe_detector.Axe") as mock_axe:
            mock_axe.return_value.inject.side_effect = Exception("script timeout")

            with pytest.raises(DetectorError):
                detector.run(mock_driver, "https://example.com")


def test_detector_contract_requires_run():
    with pytest.raises(TypeError):
        ViolationDetector()
