"""Tests for usage id minting and validation."""

import pytest

from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.shared.exceptions import InvalidTicketRequestError


class TestUsageId:
    """Tests for the idempotency key type."""

    def test_mint_is_namespaced_and_unique(self):
        first = UsageId.mint('anima')
        second = UsageId.mint('anima')

        assert first.startswith('anima:')
        assert first != second

    def test_mint_without_namespace(self):
        assert ':' not in UsageId.mint()

    def test_for_job_is_deterministic(self):
        assert UsageId.for_job('wan_remix', 'job-42') == UsageId.for_job('wan_remix', ' job-42 ')
        assert UsageId.for_job('wan_remix', 'job-42') == 'wan_remix:job-42'

    def test_for_job_requires_job_id(self):
        with pytest.raises(InvalidTicketRequestError):
            UsageId.for_job('wan_remix', '')

    @pytest.mark.parametrize('value', ['', '   ', None])
    def test_blank_values_are_rejected(self, value):
        with pytest.raises(InvalidTicketRequestError) as exc_info:
            UsageId(value)

        assert exc_info.value.status_code == 400

    def test_too_long_value_is_rejected(self):
        with pytest.raises(InvalidTicketRequestError) as exc_info:
            UsageId('x' * 129)

        assert exc_info.value.details['max_length'] == 128

    def test_parse_treats_blank_as_missing(self):
        assert UsageId.parse(None) is None
        assert UsageId.parse('  ') is None
        assert UsageId.parse('anima:abc') == 'anima:abc'

    def test_refund_id(self):
        usage_id = UsageId('anima:abc')

        assert usage_id.refund_id == 'anima:abc:refund'
        assert usage_id.refund_id.is_refund
        assert not usage_id.is_refund
