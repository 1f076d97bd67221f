import logging

from .exceptions import InvalidQueryError, handle_exception
from .expression import parse_expression
from .models import QueryRequest, ResolvedQuery
from .query_builder import build_query, parse_serialized

logger = logging.getLogger(__name__)

NOT_RECOGNIZED = "not a recognized query representation"


def get_query(query_spec: QueryRequest | ResolvedQuery | str) -> ResolvedQuery:
    """
    Resolve a query spec into a query that can be run against the data source.

    Args:
        query_spec: a QueryRequest, an already resolved query, a serialized
            query (`products?select=name,price`) or a textual expression
            (`select name, price from products where price > 20`)

    Returns:
        The ResolvedQuery, nothing is sent to the data source

    Raises:
        InvalidQueryError: if it can't be resolved
    """
    if isinstance(query_spec, ResolvedQuery):
        return query_spec
    if isinstance(query_spec, QueryRequest):
        try:
            return build_query(query_spec)
        except ValueError as e:
            handle_exception(InvalidQueryError("Invalid query", str(e)), entity=query_spec.entity)
    if not isinstance(query_spec, str) or not query_spec.strip():
        handle_exception(InvalidQueryError("Invalid query string", NOT_RECOGNIZED))
    try:
        return parse_serialized(query_spec)
    except ValueError as e:
        serialized_error = e
    try:
        return build_query(parse_expression(query_spec))
    except ValueError as e:
        logger.debug(
            f"Query {query_spec!r} rejected, as serialized query: {serialized_error}, "
            f"as expression: {e}"
        )
        # report the error of the shape the text looks like
        reason = serialized_error if "?" in query_spec else e
        handle_exception(InvalidQueryError("Invalid query string", f"{NOT_RECOGNIZED} ({reason})"))


resolve = get_query
