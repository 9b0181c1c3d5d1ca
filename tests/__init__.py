"""PortDog Test Suite

Test modules:
    test_port_parser  — Port specification parsing (all edge cases)
    test_timing       — Timing templates, adaptive policy and calibration
    test_scanner      — Scan engine classification, ordering, progress, cancellation
    test_signatures   — Banner → (service, version) rules
    test_fingerprint  — Response decoding, stage plans and the fingerprint engine
    test_pipeline     — End-to-end runs against local fake services
    test_progress     — Progress sinks and the drop-oldest channel
    test_cli          — Config loading, settings merge and result rendering
    test_utils        — Validators and logger
    test_layering     — Static import analysis enforcing the core / utils / CLI split

Helpers:
    fake_services     — Loopback TCP and TLS servers (certificate pair in certs/)

Run all tests:
    pytest tests/ -v
"""
