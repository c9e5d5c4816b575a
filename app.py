# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db ativos.db
  python app.py lojas add "Loja Centro"
  python app.py ativos add --nome "Notebook Dell" --serie SN123 --patrimonio PAT-001
  python app.py transferir 1 "Loja Centro" --colaborador "Maria" --qr-png etiqueta.png
  python app.py confirmar "http://localhost:5173/confirmar-recebimento?ref=<ref>"
  python app.py historico 1 --local "Loja Centro"
"""

from ativos.adapters.cli import main

if __name__ == "__main__":
    main()
