import pytest

from progression.services import locks
from progression.services.locks import TournamentLocked, tournament_guard


def test_second_writer_is_refused_while_held():
    with tournament_guard(41, "repair"):
        with pytest.raises(TournamentLocked) as exc:
            with tournament_guard(41, "score"):
                pass
        assert exc.value.holder == "repair"
        assert exc.value.tournament_id == 41

        with tournament_guard(42, "score"):
            pass


def test_release_frees_tournament_and_registry():
    with tournament_guard(43, "score"):
        assert locks._holders[43] == "score"
    assert 43 not in locks._holders

    with tournament_guard(43, "repair"):
        pass
    assert 43 not in locks._holders


def test_release_after_error_in_body():
    with pytest.raises(RuntimeError):
        with tournament_guard(44, "repair"):
            raise RuntimeError("repair failed")
    assert 44 not in locks._holders
