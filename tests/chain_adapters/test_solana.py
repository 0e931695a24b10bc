"""
Solana Adapter Tests.

============================================================
PURPOSE
============================================================
Verify the enriched account family and its plain RPC fallback.

TEST CATEGORIES:
- Address validation and amount formatting
- Helius parsing, type mapping and pagination
- Normalization of enriched transactions
- Degraded RPC history and token accounts
- Adapter wiring (enriched API on mainnet only)

============================================================
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from chain_adapters.config import NetworkCatalog
from chain_adapters.exceptions import (
    ConfigurationError,
    HttpError,
    InvalidAddressError,
    ParseError,
    RpcError,
    TransactionNotFoundError,
)
from chain_adapters.models import TransactionStatus, TransactionType
from chain_adapters.providers.helius import (
    TXS_PER_PAGE,
    HeliusClient,
    HeliusTransaction,
    classify_helius_type,
    source_program_name,
)
from chain_adapters.providers.solana import (
    SolanaAdapter,
    SolanaClients,
    format_sol,
    format_token_balance,
    validate_solana_address,
)
from chain_adapters.providers.solana_rpc import SolanaRpcClient


WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
OTHER = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.build_url_with_params = MagicMock(return_value="https://api.helius.xyz/v0/x")
    fetcher.get_json = AsyncMock()
    fetcher.post_json = AsyncMock()
    return fetcher


def _rpc(result) -> dict:
    return {"jsonrpc": "2.0", "id": 1, "result": result}


def _helius_tx(signature: str, slot: int = 250_000_000, **overrides) -> dict:
    data = {
        "signature": signature,
        "slot": slot,
        "timestamp": 1_700_000_000,
        "fee": 5000,
        "feePayer": WALLET,
        "type": "TRANSFER",
        "source": "SYSTEM_PROGRAM",
        "description": "",
        "nativeTransfers": [
            {"fromUserAccount": WALLET, "toUserAccount": OTHER, "amount": 1_000_000_000},
        ],
        "tokenTransfers": [],
        "transactionError": None,
    }
    data.update(overrides)
    return data


def _solana(name: str = "solana", **kwargs) -> SolanaAdapter:
    return SolanaAdapter(NetworkCatalog.default().lookup(name), **kwargs)


def _with_clients(adapter: SolanaAdapter, fetcher: MagicMock, helius: bool) -> SolanaAdapter:
    adapter._create_clients = MagicMock(return_value=SolanaClients(
        rpc=SolanaRpcClient(fetcher, adapter.config.rpc_url, adapter.name),
        helius=HeliusClient(fetcher, "KEY", adapter.name) if helius else None,
    ))
    return adapter


# ============================================================
# VALIDATION AND FORMATTING TESTS
# ============================================================

class TestValidation:
    """Tests for Solana address validation."""

    @pytest.mark.parametrize("address", [
        "11111111111111111111111111111111",
        "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
        "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
    ])
    def test_valid_addresses(self, address):
        """Test real public keys."""
        validate_solana_address(address)

    @pytest.mark.parametrize("address", [
        "",
        "abc",
        "0x742d35Cc6634C0532925a3b844Bc454e4438f44e",
        "0OIl111111111111111111111111111111",
    ])
    def test_invalid_addresses(self, address):
        """Test rejected inputs."""
        with pytest.raises(InvalidAddressError):
            validate_solana_address(address)

    def test_adapter_wrappers(self):
        """Test validate_address/format_address."""
        adapter = _solana()

        assert adapter.validate_address(WALLET)
        assert not adapter.validate_address("abc")
        assert adapter.format_address(f" {WALLET} ") == WALLET


class TestFormatting:
    """Tests for SOL and token amount rendering."""

    def test_format_sol(self):
        """Test fixed nine-decimal output."""
        assert format_sol(1_000_000_000) == "1.000000000"
        assert format_sol(1) == "0.000000001"

    @pytest.mark.parametrize("raw,decimals,expected", [
        ("1000000", 6, "1.0"),
        ("1500000", 6, "1.5"),
        ("100", 2, "1.0"),
        ("0", 6, "0.0"),
        ("42", 0, "42"),
    ])
    def test_format_token_balance(self, raw, decimals, expected):
        """Test trimmed token amounts."""
        assert format_token_balance(raw, decimals) == expected


# ============================================================
# HELIUS TESTS
# ============================================================

class TestHelius:
    """Tests for the Helius client and its models."""

    def test_type_mapping(self):
        """Test enriched type names."""
        assert classify_helius_type("SWAP") is TransactionType.SWAP
        assert classify_helius_type("stake_sol") is TransactionType.STAKE
        assert classify_helius_type("TOKEN_MINT") is TransactionType.MINT
        assert classify_helius_type("COMPRESSED_NFT_MINT_V9") is TransactionType.UNKNOWN

    def test_source_names(self):
        """Test program display names."""
        assert source_program_name("JUPITER") == "Jupiter"
        assert source_program_name("SOMETHING_NEW") == "SOMETHING_NEW"

    def test_from_api(self):
        """Test parsing one enriched transaction."""
        tx = HeliusTransaction.from_api(_helius_tx(
            "sig1",
            tokenTransfers=[{
                "fromUserAccount": WALLET,
                "toUserAccount": OTHER,
                "mint": USDC_MINT,
                "tokenAmount": 12.5,
                "tokenStandard": "Fungible",
            }],
            transactionError={"InstructionError": [0, "Custom"]},
        ))

        assert tx.signature == "sig1"
        assert tx.native_transfers[0].amount == 1_000_000_000
        assert tx.token_transfers[0].mint == USDC_MINT
        assert tx.failed
        assert tx.source_program == "System"

    def test_from_api_malformed(self):
        """Test a payload without a signature."""
        with pytest.raises(ParseError):
            HeliusTransaction.from_api({"slot": 1})

    @pytest.mark.asyncio
    async def test_pagination_stops_on_short_page(self):
        """Test cursor walking across full pages."""
        fetcher = _fetcher()
        first = [_helius_tx(f"a{i}") for i in range(TXS_PER_PAGE)]
        second = [_helius_tx(f"b{i}") for i in range(TXS_PER_PAGE)]
        third = [_helius_tx(f"c{i}") for i in range(5)]
        fetcher.get_json.side_effect = [first, second, third]
        client = HeliusClient(fetcher, "KEY")

        txs = await client.get_all_transactions(WALLET)

        assert len(txs) == 2 * TXS_PER_PAGE + 5
        assert fetcher.get_json.call_count == 3
        befores = [call.args[1]["before"] for call in fetcher.build_url_with_params.call_args_list]
        assert befores == [None, f"a{TXS_PER_PAGE - 1}", f"b{TXS_PER_PAGE - 1}"]
        assert all(call.kwargs["parse_float"] is Decimal for call in fetcher.get_json.call_args_list)

    @pytest.mark.asyncio
    async def test_pagination_stops_on_empty_page_and_cap(self):
        """Test the empty-page and page-cap stop conditions."""
        fetcher = _fetcher()
        fetcher.get_json.side_effect = [[]]
        assert await HeliusClient(fetcher, "KEY").get_all_transactions(WALLET) == []

        fetcher = _fetcher()
        fetcher.get_json.side_effect = [[_helius_tx(f"a{i}") for i in range(TXS_PER_PAGE)]]
        txs = await HeliusClient(fetcher, "KEY").get_all_transactions(WALLET, max_pages=1)
        assert len(txs) == TXS_PER_PAGE
        assert fetcher.get_json.call_count == 1

    @pytest.mark.asyncio
    async def test_pagination_failure_propagates(self):
        """Test that a failing page aborts the walk."""
        fetcher = _fetcher()
        fetcher.get_json.side_effect = [
            [_helius_tx(f"a{i}") for i in range(TXS_PER_PAGE)],
            HttpError("Connection error"),
        ]

        with pytest.raises(HttpError):
            await HeliusClient(fetcher, "KEY").get_all_transactions(WALLET)

    def test_transactions_url_uses_api_key_param(self):
        """Test the Helius key parameter spelling."""
        fetcher = _fetcher()

        HeliusClient(fetcher, "KEY").transactions_url(WALLET, before="sig9", limit=500)

        url, params = fetcher.build_url_with_params.call_args.args
        assert url == f"https://api.helius.xyz/v0/addresses/{WALLET}/transactions"
        assert params == {"api-key": "KEY", "type": "ALL", "limit": TXS_PER_PAGE, "before": "sig9"}

    @pytest.mark.asyncio
    async def test_rpc_error_label(self):
        """Test Helius RPC error messages."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = {
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": -32602, "message": "Invalid param"},
        }

        with pytest.raises(RpcError) as exc_info:
            await HeliusClient(fetcher, "KEY").get_balance(WALLET)
        assert exc_info.value.message == "Helius RPC error -32602: Invalid param"


# ============================================================
# NORMALIZATION TESTS
# ============================================================

class TestNormalization:
    """Tests for SolanaAdapter.normalize_transaction."""

    def setup_method(self):
        self.adapter = _solana()

    def test_native_transfer(self):
        """Test value from native transfers touching the address."""
        tx = HeliusTransaction.from_api(_helius_tx("sig1", nativeTransfers=[
            {"fromUserAccount": WALLET, "toUserAccount": OTHER, "amount": 1_000_000_000},
            {"fromUserAccount": OTHER, "toUserAccount": USDC_MINT, "amount": 7},
        ]))

        record = self.adapter.normalize_transaction(tx, WALLET)

        assert record.value == "1000000000"
        assert record.fee == "5000"
        assert record.from_address == WALLET
        assert record.to_address == OTHER
        assert record.tx_type is TransactionType.TRANSFER
        assert record.status is TransactionStatus.SUCCESS

    def test_token_only_swap(self):
        """Test parties taken from the first token transfer."""
        tx = HeliusTransaction.from_api(_helius_tx(
            "sig2",
            type="SWAP",
            nativeTransfers=[],
            tokenTransfers=[{
                "fromUserAccount": OTHER,
                "toUserAccount": WALLET,
                "mint": USDC_MINT,
                "tokenAmount": 1.5,
            }],
        ))

        record = self.adapter.normalize_transaction(tx, WALLET)

        assert record.tx_type is TransactionType.SWAP
        assert record.value == "0"
        assert record.from_address == OTHER
        assert record.token_transfers[0].token_address == USDC_MINT
        assert record.token_transfers[0].value == "1.5"

    def test_large_token_amount_stays_exact(self):
        """Test that token amounts decoded as Decimal keep every digit."""
        amount = Decimal("123456789012.123456789")
        tx = HeliusTransaction.from_api(_helius_tx(
            "sig3",
            nativeTransfers=[],
            tokenTransfers=[{
                "fromUserAccount": WALLET,
                "toUserAccount": OTHER,
                "mint": USDC_MINT,
                "tokenAmount": amount,
            }],
        ))

        record = self.adapter.normalize_transaction(tx, WALLET)

        assert tx.token_transfers[0].amount == amount
        assert record.token_transfers[0].value == "123456789012.123456789"

    def test_no_transfers_uses_fee_payer(self):
        """Test bare instructions."""
        tx = HeliusTransaction.from_api(_helius_tx(
            "sig3", type="UNKNOWN", nativeTransfers=[], transactionError="failed",
        ))

        record = self.adapter.normalize_transaction(tx, WALLET)

        assert record.from_address == WALLET
        assert record.to_address is None
        assert record.status is TransactionStatus.FAILED
        assert record.tx_type is TransactionType.UNKNOWN


# ============================================================
# ADAPTER TESTS
# ============================================================

class TestSolanaAdapter:
    """Tests for SolanaAdapter operations."""

    @pytest.mark.parametrize("rate_limit", [0, -1])
    def test_invalid_rate_limit_fails_at_construction(self, rate_limit):
        """Test that a non-positive RPC rate override is rejected in __init__."""
        with pytest.raises(ConfigurationError):
            _solana(rate_limit=rate_limit)

    def test_max_pages_must_be_positive(self):
        """Test page cap validation."""
        with pytest.raises(ConfigurationError):
            _solana(max_pages=0)

        assert _solana(max_pages=1)._max_pages == 1

    def test_enriched_api_only_with_key_on_mainnet(self):
        """Test Helius enablement rules."""
        assert not _solana().uses_enriched_api
        assert _solana(helius_api_key="KEY").uses_enriched_api
        assert not _solana("solana_devnet", helius_api_key="KEY").uses_enriched_api

    @pytest.mark.asyncio
    async def test_degraded_history_without_key(self):
        """Test the signature-only fallback."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc([
            {"signature": "sigA", "slot": 300, "blockTime": 1_700_000_300, "err": None},
            {"signature": "sigB", "slot": 200, "blockTime": None, "err": {"InstructionError": [0, 1]}},
        ])
        adapter = _with_clients(_solana(), fetcher, helius=False)

        txs = await adapter.get_transactions(WALLET)

        assert [tx.hash for tx in txs] == ["sigA", "sigB"]
        assert all(tx.fee == "0" for tx in txs)
        assert all(tx.tx_type is TransactionType.UNKNOWN for tx in txs)
        assert all(tx.token_transfers == [] for tx in txs)
        assert txs[0].status is TransactionStatus.SUCCESS
        assert txs[1].status is TransactionStatus.FAILED
        assert txs[1].timestamp == 0
        fetcher.get_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_history_filtered_by_slot(self):
        """Test the block range on slots."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc([
            {"signature": "sigA", "slot": 300, "err": None},
            {"signature": "sigB", "slot": 200, "err": None},
            {"signature": "sigC", "slot": 100, "err": None},
        ])
        adapter = _with_clients(_solana(), fetcher, helius=False)

        txs = await adapter.get_transactions(WALLET, from_block=150, to_block=250)

        assert [tx.hash for tx in txs] == ["sigB"]

    @pytest.mark.asyncio
    async def test_enriched_history(self):
        """Test history from Helius."""
        fetcher = _fetcher()
        fetcher.get_json.return_value = [_helius_tx("sig1"), _helius_tx("sig2", type="SWAP")]
        adapter = _with_clients(_solana(helius_api_key="KEY"), fetcher, helius=True)

        txs = await adapter.get_transactions(WALLET)

        assert [tx.tx_type for tx in txs] == [TransactionType.TRANSFER, TransactionType.SWAP]
        fetcher.post_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_native_balance_via_rpc(self):
        """Test lamport balance formatting."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc({"context": {"slot": 1}, "value": 2_500_000_000})
        adapter = _with_clients(_solana(), fetcher, helius=False)

        balance = await adapter.get_native_balance(WALLET)

        assert balance.symbol == "SOL"
        assert balance.balance == "2500000000"
        assert balance.balance_formatted == "2.500000000"

    @pytest.mark.asyncio
    async def test_token_balances_via_rpc(self):
        """Test SPL token accounts without an enriched API."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc({"context": {"slot": 1}, "value": [
            {"account": {"data": {"parsed": {"info": {
                "mint": USDC_MINT,
                "owner": WALLET,
                "tokenAmount": {"amount": "1500000", "decimals": 6, "uiAmountString": "1.5"},
            }}}}},
            {"account": {"data": {"parsed": {"info": {
                "mint": OTHER,
                "owner": WALLET,
                "tokenAmount": {"amount": "100", "decimals": 2},
            }}}}},
        ]})
        adapter = _with_clients(_solana(), fetcher, helius=False)

        balances = await adapter.get_token_balances(WALLET)

        assert [b.token_address for b in balances] == [USDC_MINT, OTHER]
        assert balances[0].balance_formatted == "1.5"
        assert balances[1].balance_formatted == "1.0"
        assert balances[0].symbol is None

    @pytest.mark.asyncio
    async def test_token_balances_via_das(self):
        """Test fungible DAS assets; NFTs are skipped."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc({"items": [
            {
                "id": USDC_MINT,
                "interface": "FungibleToken",
                "content": {"metadata": {"name": "USD Coin", "symbol": "USDC"}},
                "token_info": {"balance": 1500000, "decimals": 6, "symbol": "USDC"},
            },
            {"id": "nft1", "interface": "V1_NFT", "content": {"metadata": {"name": "Art"}}},
        ]})
        adapter = _with_clients(_solana(helius_api_key="KEY"), fetcher, helius=True)

        balances = await adapter.get_token_balances(WALLET)

        assert len(balances) == 1
        assert balances[0].symbol == "USDC"
        assert balances[0].name == "USD Coin"
        assert balances[0].balance_formatted == "1.5"

    @pytest.mark.asyncio
    async def test_get_transaction(self):
        """Test signature lookup via RPC."""
        fetcher = _fetcher()
        fetcher.post_json.side_effect = [
            _rpc({"slot": 300, "blockTime": 1_700_000_000, "meta": {"fee": 5000, "err": None}}),
            _rpc(None),
        ]
        adapter = _with_clients(_solana(), fetcher, helius=False)

        tx = await adapter.get_transaction("sigA")
        assert tx.block_number == 300
        assert tx.fee == "5000"
        assert tx.status is TransactionStatus.SUCCESS

        with pytest.raises(TransactionNotFoundError):
            await adapter.get_transaction("sigB")

    @pytest.mark.asyncio
    async def test_block_number_is_slot(self):
        """Test getSlot."""
        fetcher = _fetcher()
        fetcher.post_json.return_value = _rpc(250_000_000)
        adapter = _with_clients(_solana(), fetcher, helius=False)

        assert await adapter.get_block_number() == 250_000_000
