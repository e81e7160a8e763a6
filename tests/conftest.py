"""
Pytest fixtures for promotion engine tests.

The fake scoring service is a small FastAPI app driven through its TestClient,
which is an httpx.Client and can be handed straight to the HTTP/SOAP adapters.
"""

from decimal import Decimal

import pytest
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.testclient import TestClient

from promotion_engine.config import EngineSettings, override_settings
from promotion_engine.database import dispose_engines
from promotion_engine.models import CustomerPayload, DecisionNode, NodeConfiguration
from promotion_engine.models.context import ExecutionContext
from promotion_engine.models.decision_tree import DecisionTree

SOAP_OK = """<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <ns:PromotionResponse xmlns:ns="http://promotion.bank.com/">
      <ns:conditionResult>true</ns:conditionResult>
      <ns:discountAmount>250.50</ns:discountAmount>
      <ns:promotionName>Partner Bonus</ns:promotionName>
      <ns:promotionType>PARTNER</ns:promotionType>
    </ns:PromotionResponse>
  </soap:Body>
</soap:Envelope>"""


@pytest.fixture(autouse=True)
def engine_settings():
    """Fresh default settings per test."""
    settings = EngineSettings()
    override_settings(settings)
    yield settings
    override_settings(None)


@pytest.fixture
def vip_customer() -> CustomerPayload:
    return CustomerPayload(
        customer_id="CUST001",
        account_type="VIP",
        annual_income=Decimal("2000000"),
        credit_score=800,
        region="TW-TPE",
        transaction_count=50,
        account_balance=Decimal("2000"),
    )


@pytest.fixture
def standard_customer() -> CustomerPayload:
    return CustomerPayload(
        customer_id="CUST002",
        account_type="STANDARD",
        annual_income=Decimal("500000"),
        credit_score=650,
        region="TW-KHH",
        transaction_count=5,
    )


@pytest.fixture
def context(vip_customer) -> ExecutionContext:
    return ExecutionContext(vip_customer, request_id="req-1", tree_id="T1")


@pytest.fixture
def make_config():
    """Build a NodeConfiguration: make_config("condition", "expression", expression=..., **parameters)."""

    def _make(node_type, command_type, expression=None, node_id="N1", **parameters):
        return NodeConfiguration(
            node_id=node_id,
            node_type=node_type,
            command_type=command_type,
            expression=expression,
            parameters=parameters,
        )

    return _make


@pytest.fixture
def make_node():
    """Build a DecisionNode for tree T1 from node id, types and optional successors."""

    def _make(node_id, node_type, command_type, expression=None, true_id=None, false_id=None, tree_id="T1", **parameters):
        return DecisionNode(
            id=node_id,
            tree_id=tree_id,
            configuration=NodeConfiguration(
                node_type=node_type,
                command_type=command_type,
                expression=expression,
                parameters=parameters,
            ),
            true_node_id=true_id,
            false_node_id=false_id,
        )

    return _make


@pytest.fixture
def t1_tree(make_node) -> DecisionTree:
    """INCOME_CHECK (annualIncome >= 1,000,000) -> VIP_CALC (2% of income) | REJECT_CALC."""
    tree = DecisionTree("T1", "VIP income promotion")
    tree.add_nodes(
        [
            make_node(
                "INCOME_CHECK",
                "Condition",
                "Expression",
                "annualIncome >= 1000000",
                true_id="VIP_CALC",
                false_id="REJECT_CALC",
            ),
            make_node(
                "VIP_CALC",
                "Calculation",
                "Expression",
                "annualIncome * 0.02",
                promotionName="VIP Income Reward",
                promotionType="VIP",
            ),
            make_node(
                "REJECT_CALC",
                "Calculation",
                "Expression",
                "{'discountAmount': 0, 'eligible': False}",
                promotionName="No Promotion",
                promotionType="NONE",
            ),
        ]
    )
    tree.set_root_node("INCOME_CHECK")
    tree.activate()
    yield tree
    tree.close()


@pytest.fixture
def scoring_app() -> FastAPI:
    """Fake external scoring service; received payloads are kept on app.state.requests."""
    app = FastAPI()
    app.state.requests = []

    @app.post("/score")
    async def score(payload: dict, request: Request):
        app.state.requests.append({"payload": payload, "headers": dict(request.headers)})
        return {"conditionResult": payload.get("creditScore", 0) >= 700, "score": payload.get("creditScore")}

    @app.post("/discount")
    async def discount(payload: dict):
        app.state.requests.append({"payload": payload})
        return {"discountAmount": "100", "promotionName": "Partner Cashback", "promotionType": "PARTNER"}

    @app.post("/profile")
    async def profile(payload: dict):
        return {"segment": "gold"}

    @app.post("/empty")
    async def empty(payload: dict):
        return {}

    @app.post("/broken")
    async def broken(payload: dict):
        raise HTTPException(status_code=503, detail="scoring backend down")

    @app.post("/soap")
    async def soap(request: Request):
        app.state.requests.append({"body": (await request.body()).decode("utf-8"), "headers": dict(request.headers)})
        return Response(content=SOAP_OK, media_type="text/xml")

    return app


@pytest.fixture
def scoring_client(scoring_app):
    with TestClient(scoring_app) as client:
        yield client


@pytest.fixture
def sqlite_url(tmp_path):
    """File-backed SQLite database URL; cached engines are disposed after the test."""
    url = f"sqlite:///{tmp_path / 'promotions.db'}"
    yield url
    dispose_engines()
