"""
Tests Package

Test suite for the slot scheduling service.

Modules:
- test_ledger: Capacity ledger bounds, transfers and versions
- test_eligibility: Zone matching and rule checks
- test_slot_generator: Template expansion and regeneration
- test_recommendation: Slot and location scoring
- test_emitter: Webhook delivery, retries and signatures
- test_api: FastAPI endpoints

Run all tests:
    pytest slotwise/tests/

Run specific test file:
    pytest slotwise/tests/test_ledger.py -v
"""
