"""Exposition output of the studio_booking prometheus registry."""

from studio_booking.monitoring.prometheus_metrics import prometheus_metrics


def test_exposition_includes_recorded_reservation():
    prometheus_metrics.record_reservation("waitlisted")

    text = prometheus_metrics.get_metrics().decode("utf-8")

    assert "studio_booking_reservations_total" in text
    assert 'outcome="waitlisted"' in text


def test_exposition_includes_service_operation_labels():
    prometheus_metrics.record_service_operation("ExpositionService", "noop", 0.01)

    text = prometheus_metrics.get_metrics().decode("utf-8")

    assert 'service="ExpositionService"' in text
