import pytest

from ativos.infra.migrations import apply_migrations
from ativos.infra.views import create_views
from ativos.infra.repositories import LojaRepo


@pytest.fixture
def db_path(tmp_path):
    """Banco migrado com as lojas 'Estoque Central' (seed) e 'Loja Norte'."""
    path = str(tmp_path / "ativos_test.sqlite")
    apply_migrations(path)
    create_views(path)
    LojaRepo(path).insert({"nome": "Loja Norte", "cidade": "Manaus"})
    return path
