"""
Client for the chat analysis of closing statistics.

Only pre-aggregated numbers leave the system: the period summary is rendered
into the system prompt and the user's question is sent as-is to an
OpenAI-compatible ``chat/completions`` endpoint. The answer is returned as
plain text.
"""
import logging
from typing import Optional

import httpx

from closerflow.services.stats_service import ClosingStats

logger = logging.getLogger(__name__)


class AnalysisError(RuntimeError):
    pass


class AnalysisNotConfigured(AnalysisError):
    pass


def build_system_prompt(stats: ClosingStats) -> str:
    return (
        "Você é um assistente especializado em análise financeira de fechamentos de caixa para lojas.\n"
        "Seu papel é analisar os dados fornecidos e oferecer insights, sugestões de melhorias, "
        "pontos de atenção e observações relevantes.\n\n"
        "Dados atuais do período:\n"
        f"- Valor Esperado Total: R$ {stats['total_expected']:.2f}\n"
        f"- Valor Contado Total: R$ {stats['total_counted']:.2f}\n"
        f"- Diferença Total: R$ {stats['total_difference']:.2f}\n"
        f"- Sobras: R$ {stats['surplus']:.2f} ({stats['surplus_count']} ocorrências)\n"
        f"- Faltas: R$ {stats['deficit']:.2f} ({stats['deficit_count']} ocorrências)\n"
        f"- Fechamentos OK/Aprovados: {stats['ok_count']}\n"
        f"- Fechamentos com Atenção: {stats['attention_count']}\n"
        f"- Fechamentos Pendentes: {stats['pending_count']}\n"
        f"- Total de Fechamentos: {stats['total_closings']}\n"
        f"- Taxa de Precisão: {stats['accuracy_rate']}%\n\n"
        "Responda de forma clara, objetiva e em português brasileiro. Use formatação markdown quando apropriado.\n"
        "Se o usuário perguntar algo fora do escopo de análise de caixa, gentilmente redirecione a conversa."
    )


class CashAnalysisClient:
    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    def ask(self, message: str, stats: ClosingStats) -> str:
        if not self.api_key:
            raise AnalysisNotConfigured("Análise por IA não configurada")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(stats)},
                {"role": "user", "content": message},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("analysis endpoint unreachable: %s", exc)
            raise AnalysisError("Serviço de análise indisponível") from exc

        if response.status_code != 200:
            logger.warning("analysis endpoint error %s: %s", response.status_code, response.text[:500])
            raise AnalysisError(f"Erro no serviço de análise: {response.status_code}")

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AnalysisError("Resposta inválida do serviço de análise") from exc
