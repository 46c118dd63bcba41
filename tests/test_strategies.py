from datetime import date

from PubRetriever.exceptions import TransportFailure
from PubRetriever.name_utils import identity_author_names
from PubRetriever.strategies import (
    RetrievalStrategy,
    affiliation_in_db_query,
    affiliation_query,
    build_strategies,
    construct_email_query,
    first_name_initial_query,
    first_name_initial_strict_query,
    full_name_query,
    gold_standard_query,
    grant_query,
)
from tests.fixtures import FakePubMedClient, FakeScopusClient, make_article, make_identity


def _names(identity):
    return identity_author_names(identity)


def test_construct_email_query():
    """
    Test the email query for zero, one and several addresses, including the comma-for-period fix.
    """
    assert construct_email_query([]) is None
    assert construct_email_query(["jas2001@med.cornell.edu"]) == "jas2001@med.cornell.edu"
    assert construct_email_query(["a@x.org", "b@y.org"]) == "a@x.org OR b@y.org"
    assert construct_email_query(["ayr2001@med.cornell,edu"]) == "ayr2001@med.cornell.edu"


def test_gold_standard_query():
    """
    Test that known PMIDs become uid terms and that no PMIDs means no query.
    """
    identity = make_identity(known_pmids=[123, 456, 123])
    assert gold_standard_query(identity, _names(identity)) == "123[uid] OR 456[uid]"
    assert gold_standard_query(make_identity(), {}) is None


def test_first_name_initial_queries():
    """
    Test the lenient and strict author clauses; only the strict one uses derived surnames.
    """
    identity = make_identity(first="Anna", last="Vander Berg", middle=None)
    names = _names(identity)
    assert first_name_initial_query(identity, names) == "(Vander Berg A[au])"
    assert first_name_initial_strict_query(identity, names) == \
        "(Berg Anna[fau] OR Vander Anna[fau] OR Vander Berg Anna[fau])"


def test_full_name_query_includes_middle_name():
    """
    Test that the full-name query spells out first and middle names.
    """
    identity = make_identity()
    assert full_name_query(identity, _names(identity)) == "(Smith John A[fau])"


def test_restricted_queries_need_their_data():
    """
    Test that affiliation and grant strategies build nothing without affiliations or grants.
    """
    identity = make_identity()
    names = _names(identity)
    assert affiliation_in_db_query(False)(identity, names) is None
    assert grant_query(False)(identity, names) is None
    assert affiliation_query([], False)(identity, names) is None


def test_restricted_queries_quote_multi_word_values():
    """
    Test the affiliation and grant query forms.
    """
    identity = make_identity(affiliations=["Weill Cornell Medicine"], grants=["R01CA123456"])
    names = _names(identity)
    assert affiliation_in_db_query(False)(identity, names) == \
        '(Smith J[au]) AND ("Weill Cornell Medicine"[ad])'
    assert grant_query(True)(identity, names) == "(Smith John[fau]) AND (R01CA123456[gr])"
    assert affiliation_query(["Cornell", "NewYork-Presbyterian"], False)(identity, names) == \
        "(Smith J[au]) AND (Cornell[ad] OR NewYork-Presbyterian[ad])"


def test_retrieve_without_query_touches_nothing():
    """
    Test that a strategy lacking its data returns an empty result without searching.
    """
    client = FakePubMedClient()
    strategies = build_strategies(client)
    identity = make_identity()
    result = strategies.email.retrieve(identity, _names(identity), strict_only=False)
    assert result.pubmed_articles == {}
    assert result.query_results == []
    assert client.searches == []


def test_retrieve_falls_back_to_strict_query_above_threshold():
    """
    Test that a too-broad initial query is followed by the strict query, whose PMIDs are fetched.
    """
    client = FakePubMedClient(
        results={"(Smith J[au])": (5000, [1, 2, 3]), "(Smith John[fau])": (40, [2])},
        articles=[make_article(1), make_article(2), make_article(3)],
    )
    strategy = build_strategies(client, threshold=2000).first_name_initial
    identity = make_identity()
    result = strategy.retrieve(identity, _names(identity), strict_only=False)

    assert [q.query for q in result.query_results] == ["(Smith J[au])", "(Smith John[fau])"]
    assert result.primary_count == 5000, "The first query issued must stay first"
    assert set(result.pubmed_articles) == {2}
    assert client.fetches == [[2]]


def test_retrieve_keeps_diagnostics_when_fetch_fails():
    """
    Test that a failing fetch returns the search diagnostics without records.
    """
    class FailingFetch(FakePubMedClient):
        def fetch(self, pmids):
            raise TransportFailure("efetch down")

    client = FailingFetch(results={"(Smith J[au])": (3, [1, 2, 3])})
    strategy = build_strategies(client).first_name_initial
    identity = make_identity()
    result = strategy.retrieve(identity, _names(identity), strict_only=False)

    assert result.pubmed_articles == {}
    assert result.primary_count == 3


def test_retrieve_keep_below_reports_count_only():
    """
    Test that a search at or above keep_below is neither narrowed nor fetched.
    """
    client = FakePubMedClient(results={"(Smith J[au])": (5000, [1, 2])}, articles=[make_article(1)])
    strategy = build_strategies(client, threshold=100).first_name_initial
    identity = make_identity()
    result = strategy.retrieve(identity, _names(identity), strict_only=False, keep_below=5000)

    assert client.queries == ["(Smith J[au])"]
    assert client.fetches == []
    assert result.primary_count == 5000


def test_retrieve_strict_only_runs_strict_query_directly():
    """
    Test that strict_only skips the initial query.
    """
    client = FakePubMedClient(results={"(Smith John[fau])": (1, [7])}, articles=[make_article(7)])
    strategy = build_strategies(client).first_name_initial
    identity = make_identity()
    result = strategy.retrieve(identity, _names(identity), strict_only=True)
    assert client.queries == ["(Smith John[fau])"]
    assert set(result.pubmed_articles) == {7}


def test_retrieve_passes_date_window():
    """
    Test that the publication window reaches the search call.
    """
    client = FakePubMedClient()
    strategy = build_strategies(client).first_name_initial
    identity = make_identity()
    strategy.retrieve(identity, _names(identity), False, start_date=date(2023, 1, 1), end_date=date(2023, 12, 31))
    assert client.searches == [("(Smith J[au])", date(2023, 1, 1), date(2023, 12, 31))]


def test_retrieve_by_pmids_records_diagnostic():
    """
    Test the direct lookup: deduplicated fetch and one uid diagnostic counting what was found.
    """
    client = FakePubMedClient(articles=[make_article(1), make_article(2)])
    strategy = build_strategies(client).gold_standard
    result = strategy.retrieve_by_pmids([1, 2, 1, 3])
    assert client.fetches == [[1, 2, 3]]
    assert set(result.pubmed_articles) == {1, 2}
    assert result.query_results[0].query == "1[uid] OR 2[uid] OR 3[uid]"
    assert result.query_results[0].num_result == 2
    assert strategy.retrieve_by_pmids([]).query_results == []


def test_scopus_lookups_without_client_return_nothing():
    """
    Test that the Scopus lookups are no-ops without a client or input.
    """
    strategy = build_strategies(FakePubMedClient()).gold_standard
    assert strategy.retrieve_scopus([1, 2]) == []
    assert strategy.retrieve_scopus_by_dois(["10.1/x"]) == []

    scopus = FakeScopusClient()
    strategy = build_strategies(FakePubMedClient(), scopus).gold_standard
    assert strategy.retrieve_scopus([]) == []
    assert scopus.pmid_calls == []


def test_strategy_names_and_broadening_order():
    """
    Test the strategy names and the order of the broadening group.
    """
    strategies = build_strategies(FakePubMedClient())
    assert [s.get_name() for s in strategies.broadening()] == [
        "affiliation_in_db", "affiliation", "department", "grant", "full_name",
    ]
    assert isinstance(strategies.email, RetrievalStrategy)
