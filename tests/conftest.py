"""Pytest configuration and shared fixtures for tests."""

from __future__ import annotations

import asyncio
from datetime import datetime

import mongomock
import pytest
from bson import ObjectId

from digitalius.pipeline.dispatcher import CollectionDispatcher
from digitalius.pipeline.orchestrator import QueryPipeline
from digitalius.schemas.intent import Intent
from digitalius.schemas.records import DocumentKind
from digitalius.schemas.response import AnswerContext
from digitalius.services.document_store import DocumentStore

TEST_DB = "expediente_test"

COLLECTION_NAMES = {
    DocumentKind.NOTICE: "circulares",
    DocumentKind.INSTRUCTION: "instructivos",
    DocumentKind.REGULATION: "reglamentos",
}

NOTICES = [
    {
        "_id": ObjectId(),
        "tipo_normativa": "CIRCULAR",
        "numero": "06/20",
        "tema": "Feria judicial",
        "resumen": "Disposiciones sobre la feria judicial de invierno",
        "palabras_clave": "feria, receso , invierno",
        "fecha_expedicion": datetime(2020, 7, 1),
        "link_de_acceso": "https://docs.example.org/circulares/06-20.pdf",
        "entidades_afectadas": [
            {"nombre_entidad": "Mesa de Entradas", "tipo": "modificación", "tipo_entidad": None},
        ],
    },
    {
        "_id": ObjectId(),
        "tipo_normativa": "ACORDADA",
        "numero": "06/20",
        "tema": "Superintendencia",
        "resumen": "Acordada de superintendencia sobre la feria",
        "fecha_expedicion": datetime(2020, 5, 1),
    },
    {
        "_id": ObjectId(),
        "tipo_normativa": "CIRCULAR",
        "numero": "12/23",
        "tema": "Expediente digital",
        "resumen": "Uso de firma digital en escritos judiciales",
        "palabras_clave": ["firma digital", "escritos"],
        "fecha_expedicion": datetime(2023, 3, 15),
        "link_acceso": "https://docs.example.org/circulares/12-23.pdf",
        "titulo": None,
    },
    {
        "_id": ObjectId(),
        "tipo_normativa": "Circular",
        "numero": "3/24",
        "tema": "Notificaciones",
        "resumen": "Notificaciones electrónicas al domicilio digital",
        "palabras_clave": ["notificaciones"],
        "fecha_expedicion": datetime(2024, 2, 1),
    },
]

INSTRUCTIONS = [
    {
        "_id": ObjectId(),
        "titulo": "I10 - Carga de escritos",
        "resumen": "Cómo cargar escritos en el sistema",
        "palabras_clave": "escritos, carga",
        "tipo_normativa": "Instructivo",
    },
    {
        "_id": ObjectId(),
        "titulo": "I141 - Firma digital",
        "resumen": "Uso de firma digital para magistrados",
        "palabras_clave": ["firma digital"],
        "tipo_normativa": "Instructivo",
    },
    {
        "_id": ObjectId(),
        "titulo": "E3 - Presentaciones externas",
        "resumen": "Presentaciones de abogados",
        "tipo_normativa": "Instructivo",
    },
    {
        "_id": ObjectId(),
        "titulo": "E12 - Domicilio digital",
        "resumen": "Constitución de domicilio digital por abogados",
        "tipo_normativa": "Instructivo",
    },
]

REGULATION_SECTIONS = [
    {
        "_id": ObjectId(),
        "titulo_seccion": "Disposiciones generales",
        "articulos": [
            {"numero_articulo": 1, "resumen_articulo": "Objeto del reglamento", "palabras_clave_articulo": ["objeto"]},
            {"numero_articulo": 2, "resumen_articulo": "Ámbito de aplicación", "palabras_clave_articulo": "ámbito, aplicación"},
        ],
    },
    {
        "_id": ObjectId(),
        "titulo_seccion": "Notificaciones electrónicas",
        "articulos": [
            {
                "numero_articulo": 25,
                "resumen_articulo": "Las notificaciones se practican en el domicilio digital",
                "palabras_clave_articulo": ["notificaciones", "domicilio digital"],
            },
            {"numero_articulo": 26, "resumen_articulo": "Plazos de notificación", "palabras_clave_articulo": None},
            {"numero_articulo": 27, "resumen_articulo": "Cédulas electrónicas"},
        ],
    },
]

TOTAL_ARTICLES = 5


class FakeClassifier:
    """Returns a fixed Intent per query (or a default), or raises."""

    def __init__(self, intents=None, default=None, error=None):
        self.intents = intents or {}
        self.default = default or Intent.unknown()
        self.error = error
        self.calls: list[str] = []

    async def classify(self, query: str) -> Intent:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return self.intents.get(query, self.default)


class FakeSynthesizer:
    """Records every Answer Context it receives."""

    def __init__(self, answer="Respuesta sintetizada.", error=None, delay=0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.contexts: list[AnswerContext] = []

    async def synthesize(self, context: AnswerContext) -> str:
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


class CountingStore(DocumentStore):
    """DocumentStore that counts every read."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    async def find(self, *args, **kwargs):
        self.reads += 1
        return await super().find(*args, **kwargs)

    async def count(self, *args, **kwargs):
        self.reads += 1
        return await super().count(*args, **kwargs)

    async def count_articles(self, *args, **kwargs):
        self.reads += 1
        return await super().count_articles(*args, **kwargs)


@pytest.fixture
def mongo_client():
    client = mongomock.MongoClient()
    db = client[TEST_DB]
    db[COLLECTION_NAMES[DocumentKind.NOTICE]].insert_many([dict(d) for d in NOTICES])
    db[COLLECTION_NAMES[DocumentKind.INSTRUCTION]].insert_many([dict(d) for d in INSTRUCTIONS])
    db[COLLECTION_NAMES[DocumentKind.REGULATION]].insert_many([dict(d) for d in REGULATION_SECTIONS])
    return client


@pytest.fixture
def store(mongo_client):
    return CountingStore(
        database_name=TEST_DB,
        client=mongo_client,
        collection_names=dict(COLLECTION_NAMES),
    )


@pytest.fixture
def dispatcher(store):
    return CollectionDispatcher(store, latest_notices_limit=5)


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def make_pipeline(dispatcher, synthesizer):
    """Build a QueryPipeline around the seeded store with a given classifier."""

    def _make(classifier, synth=None):
        return QueryPipeline(
            classifier=classifier,
            dispatcher=dispatcher,
            synthesizer=synth or synthesizer,
        )

    return _make
