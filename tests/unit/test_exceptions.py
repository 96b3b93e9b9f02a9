import pytest

from batchtrack.exceptions import BatchTrackError, PersistenceError, ProviderError


class TestExceptionHierarchy:
    def test_all_inherit_from_base(self):
        assert issubclass(ProviderError, BatchTrackError)
        assert issubclass(PersistenceError, BatchTrackError)

    def test_step_attribute(self):
        assert ProviderError.step == "provider"
        assert PersistenceError.step == "storage"

    def test_catchable_by_base_class(self):
        with pytest.raises(BatchTrackError):
            raise ProviderError("timeout")

    def test_keeps_cause(self):
        cause = RuntimeError("disk full")
        try:
            try:
                raise cause
            except RuntimeError as e:
                raise PersistenceError("write failed") from e
        except PersistenceError as err:
            assert err.__cause__ is cause
