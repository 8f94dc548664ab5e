"""
Memo AI — Test per il modulo CLI (memo_ai/cli.py)
Verifica il parsing degli argomenti, i sottocomandi di manutenzione
e la gestione degli errori.

Pattern: mock di uvicorn.run per evitare l'avvio reale del server.
Ogni test isola il parsing degli argomenti tramite sys.argv.
"""

import sys
from unittest.mock import MagicMock, patch

import pytest

from memo_ai import config

# ── Helper ────────────────────────────────────────────────────────────────────


def _esegui_main(argv: list[str]) -> MagicMock:
    """
    Imposta sys.argv e invoca main() con uvicorn mockato.
    Restituisce il mock di uvicorn per ispezionare la chiamata a run().
    """
    from memo_ai.cli import main

    mock_uvicorn = MagicMock()
    with patch.dict(sys.modules, {"uvicorn": mock_uvicorn}):
        with patch("sys.argv", ["memo-ai"] + argv):
            main()
    return mock_uvicorn


# ── Avvio server ──────────────────────────────────────────────────────────────


class TestServe:
    def test_default(self):
        """Senza argomenti il server parte con host, porta e log level di default."""
        mock_uvicorn = _esegui_main([])
        args, kwargs = mock_uvicorn.run.call_args
        assert args[0] == "memo_ai.main:app"
        assert kwargs["host"] == config.HOST
        assert kwargs["port"] == config.PORT
        assert kwargs["reload"] is False
        assert kwargs["log_level"] == "warning"

    def test_argomenti_personalizzati(self):
        """Tutti gli argomenti combinati devono essere passati correttamente a uvicorn."""
        mock_uvicorn = _esegui_main(["--host", "0.0.0.0", "--port", "9000", "--reload", "--log-level", "debug"])
        _, kwargs = mock_uvicorn.run.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 9000
        assert isinstance(kwargs["port"], int)
        assert kwargs["reload"] is True
        assert kwargs["log_level"] == "debug"


# ── Argomenti non validi ──────────────────────────────────────────────────────


class TestArgomentiNonValidi:
    @pytest.mark.parametrize(
        "argv",
        [
            ["--port", "abc"],
            ["--log-level", "verbose"],
            ["--opzione-inesistente"],
            ["repair", "--limit", "molti"],
        ],
    )
    def test_rifiutati_da_argparse(self, argv):
        """argparse esce con codice 2 per errori di validazione."""
        with pytest.raises(SystemExit) as exc:
            _esegui_main(argv)
        assert exc.value.code == 2


# ── Uvicorn non trovato (ImportError) ────────────────────────────────────────


class TestUvicornNonTrovato:
    def test_import_error_causa_exit_1(self, capsys):
        """Se uvicorn non è installato, main() esce con 1 e scrive solo su stderr."""
        from memo_ai.cli import main

        with patch.dict(sys.modules, {"uvicorn": None}):
            with patch("sys.argv", ["memo-ai"]):
                with pytest.raises(SystemExit) as exc:
                    main()
        assert exc.value.code == 1
        catturato = capsys.readouterr()
        assert "uvicorn" in catturato.err.lower()
        assert catturato.out == ""


# ── Sottocomandi di manutenzione ─────────────────────────────────────────────


class TestRepair:
    def test_repair_riporta_conteggi(self, capsys):
        """repair usa il servizio e stampa il riepilogo."""
        service = MagicMock()
        service.repair.return_value = {"scanned": 3, "repaired": 3, "failed": 0}
        with patch("memo_ai.service.get_service", return_value=service):
            mock_uvicorn = _esegui_main(["repair", "--limit", "7"])

        service.repair.assert_called_once_with(limit=7)
        service.close.assert_called_once()
        mock_uvicorn.run.assert_not_called()
        assert "3 repaired" in capsys.readouterr().out

    def test_repair_con_errori_esce_con_1(self):
        service = MagicMock()
        service.repair.return_value = {"scanned": 2, "repaired": 1, "failed": 1}
        with patch("memo_ai.service.get_service", return_value=service):
            with pytest.raises(SystemExit) as exc:
                _esegui_main(["repair"])
        assert exc.value.code == 1
        service.repair.assert_called_once_with(limit=config.REPAIR_BATCH_LIMIT)


class TestReindex:
    def test_reindex_senza_sqlite_vec(self, capsys):
        """Senza sqlite-vec il comando fallisce con un messaggio chiaro."""
        with patch("memo_ai.vector_index.load_extension", return_value=False):
            with pytest.raises(SystemExit) as exc:
                _esegui_main(["reindex"])
        assert exc.value.code == 1
        assert "sqlite-vec" in capsys.readouterr().err

    def test_reindex_riporta_conteggio(self, capsys):
        with (
            patch("memo_ai.vector_index.load_extension", return_value=True),
            patch("memo_ai.vector_index.rebuild", return_value=5) as rebuild,
        ):
            _esegui_main(["reindex"])
        rebuild.assert_called_once()
        assert "Indexed 5 note embeddings" in capsys.readouterr().out
