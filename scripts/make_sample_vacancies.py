#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import random
from datetime import date, datetime, timedelta, timezone
from pathlib import Path


UNITS = ["Matriz", "Filial Norte", "Filial Sul"]
SECTORS = ["Produção", "Logística", "Administrativo", "Qualidade"]
JOB_TYPES = ["Operacional", "Técnico", "Liderança", ""]
TITLES = ["Operador de Máquinas", "Auxiliar de Logística", "Analista de Qualidade", "Supervisor de Turno"]
SHIFTS = ["1º Turno", "2º Turno", "3º Turno"]
MANAGERS = ["Ana Souza", "Bruno Lima", "Carla Dias"]
DIRECTORS = ["Diego Alves", "Elisa Rocha"]
RECRUITERS = ["Fernanda", "Gustavo", None]
CHANNELS = ["Indicação", "LinkedIn", "Site", "Agência"]


def _day(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def make_row(index: int, today: date, rng: random.Random) -> dict:
    opened = today - timedelta(days=rng.randint(0, 90))
    growth = rng.random() < 0.3
    recruiter = rng.choice(RECRUITERS)
    row = {
        "id": index,
        "created_at": datetime.combine(opened, datetime.min.time(), timezone.utc).isoformat(),
        "VAGA": rng.randint(1, 3),
        "ABERTURA": opened.isoformat(),
        "UNIDADE": rng.choice(UNITS),
        "SETOR": rng.choice(SECTORS),
        "TIPO_CARGO": rng.choice(JOB_TYPES),
        "CARGO": rng.choice(TITLES),
        "TIPO": "Aumento de Quadro" if growth else "Substituição",
        "MOTIVO": "Expansão" if growth else "Pedido de demissão",
        "NOME_SUBSTITUIDO": None if growth else f"Colaborador {index}",
        "TURNO": rng.choice(SHIFTS),
        "GESTOR": rng.choice(MANAGERS),
        "GERENTE": rng.choice(DIRECTORS),
        "FECHAMENTO": None,
        "NOME_SUBSTITUICAO": None,
        "CAPTACAO": None,
        "RECRUTADOR": recruiter,
        "usuário_criador": recruiter,
        "usuario_fechador": None,
        "CONGELADA": False,
        "DIAS_ABERTO": None,
        "OBSERVACOES": [f"{_day(opened)} {recruiter or 'Sistema'}: Vaga aberta no sistema."],
    }
    roll = rng.random()
    if roll < 0.4:
        closed = opened + timedelta(days=rng.randint(1, 60))
        if closed > today:
            closed = today
        row.update(
            {
                "FECHAMENTO": closed.isoformat(),
                "NOME_SUBSTITUICAO": f"Contratado {index}",
                "CAPTACAO": rng.choice(CHANNELS),
                "usuario_fechador": recruiter,
                "DIAS_ABERTO": (closed - opened).days,
            }
        )
        row["OBSERVACOES"].append(f"{_day(closed)} {recruiter or 'Sistema'}: Vaga finalizada.")
    elif roll < 0.5:
        row["CONGELADA"] = True
        row["OBSERVACOES"].append(f"{_day(today)} {recruiter or 'Sistema'}: Vaga CONGELADA.")
    return row


def main() -> None:
    parser = argparse.ArgumentParser(description="Gera um arquivo JSON de vagas de exemplo para o store em memória")
    parser.add_argument("--output", required=True, help="Caminho do arquivo de saída (.json)")
    parser.add_argument("--count", type=int, default=50, help="Quantidade de vagas")
    parser.add_argument("--seed", type=int, default=42, help="Semente do gerador aleatório")
    args = parser.parse_args()

    rng = random.Random(args.seed)
    today = datetime.now(timezone.utc).date()
    rows = [make_row(index, today, rng) for index in range(1, args.count + 1)]

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as fp:
        json.dump(rows, fp, ensure_ascii=False, indent=2)

    print(f"{len(rows)} vagas de exemplo geradas em: {output}")


if __name__ == "__main__":
    main()
