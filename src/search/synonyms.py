"""synonyms.py
Expand search keywords with ontology synonyms.

For every keyword one SPARQL query is sent to the graph store, all of them
concurrently.  A binding contributes its ``annotatedTarget`` when the
annotation property is an exact synonym or alternative label, or its
``sameAsLabel`` when it came from an ``owl:sameAs`` concept.
"""

from __future__ import annotations

import asyncio
import logging

from src.common.schemas import BindingValue
from src.common.sparql_client import SparqlClient

logger = logging.getLogger(__name__)

SYNONYM_PROPERTIES = frozenset({"has_exact_synonym", "alternative_label"})

_SYNONYMS_QUERY = """\
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
PREFIX rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#>
PREFIX owl: <http://www.w3.org/2002/07/owl#>
PREFIX skos: <http://www.w3.org/2004/02/skos/core#>
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>
SELECT DISTINCT ?annotatedTarget ?annotatedPropertyLabel ?sameAsLabel
WHERE {{
  {{
    ?nodeID owl:annotatedSource ?xs .
    ?nodeID owl:annotatedProperty ?annotatedProperty .
    ?nodeID owl:annotatedTarget ?annotatedTarget .
    ?nodeID ?aaProperty ?aaPropertyTarget .
    OPTIONAL {{ ?annotatedProperty rdfs:label ?annotatedPropertyLabel }} .
    OPTIONAL {{ ?aaProperty rdfs:label ?aaPropertyLabel }} .
    FILTER ( isLiteral( ?annotatedTarget ) ) .
    FILTER ( ?aaProperty NOT IN ( owl:annotatedSource, rdf:type, owl:annotatedProperty, owl:annotatedTarget ) )
    {{
      SELECT DISTINCT ?xs WHERE {{
        ?xs rdfs:label ?xl .
        FILTER ( ?xl = '{term}'^^xsd:string )
      }}
    }}
  }}
  UNION
  {{
    SELECT ?sameAsLabel WHERE {{
      ?concept skos:prefLabel ?prefLabel .
      FILTER ( str(?prefLabel) = '{term}' )
      ?concept owl:sameAs ?sameAsConcept .
      ?sameAsConcept skos:prefLabel ?sameAsLabel .
    }}
  }}
}}
"""


def escape_literal(value: str) -> str:
    """Escape *value* for use inside a single-quoted SPARQL string literal."""
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def synonyms_query(keyword: str) -> str:
    return _SYNONYMS_QUERY.format(term=escape_literal(keyword))


def synonyms_from_bindings(bindings: list[dict[str, BindingValue]]) -> list[str]:
    synonyms: list[str] = []
    for binding in bindings:
        prop = binding.get("annotatedPropertyLabel")
        if prop is not None:
            target = binding.get("annotatedTarget")
            if prop.value in SYNONYM_PROPERTIES and target is not None:
                synonyms.append(target.value)
        elif "sameAsLabel" in binding:
            synonyms.append(binding["sameAsLabel"].value)
    return synonyms


class SynonymResolver:
    def __init__(self, sparql: SparqlClient) -> None:
        self._sparql = sparql

    async def synonyms(self, keyword: str) -> list[str]:
        bindings = await self._sparql.select(synonyms_query(keyword))
        found = synonyms_from_bindings(bindings)
        logger.debug("Synonyms for '%s': %s", keyword, found)
        return found

    async def expand(self, keywords: list[str]) -> list[str]:
        """Return *keywords* followed by the de-duplicated union of their synonyms.

        The first failing lookup aborts the whole expansion and cancels the rest.
        """
        tasks = [asyncio.create_task(self.synonyms(k)) for k in keywords]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        seen = set(keywords)
        expanded = list(keywords)
        for synonyms in results:
            for synonym in synonyms:
                if synonym not in seen:
                    seen.add(synonym)
                    expanded.append(synonym)
        return expanded
