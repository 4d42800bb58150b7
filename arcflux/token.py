"""
Tokens.

Live balances and allowances are observed through the context's shared
multiplexer, so every caller watching the same account shares one upstream
read per block. Writes go through the operation pipeline.
"""

from typing import TYPE_CHECKING, Optional

from .endpoints import Receipt, TransactionRequest
from .keys import Address, AllowanceKey, TokenBalanceKey, check_address
from .multiplexer import ErrorListener, Listener, SubscriptionHandle
from .operation import Operation

if TYPE_CHECKING:
    from .context import Arc


def _receipt(receipt: Receipt) -> Receipt:
    # an empty event list does not mean anything failed
    return receipt


class Token:
    def __init__(self, address: Address, context: "Arc"):
        if not address:
            raise ValueError("No address provided - cannot create Token instance")
        self.address = check_address(address)
        self.context = context

    def balance_key(self, owner: Address) -> TokenBalanceKey:
        return TokenBalanceKey(self.address, owner)

    def allowance_key(self, owner: Address, spender: Address) -> AllowanceKey:
        return AllowanceKey(self.address, owner, spender)

    async def balance_of(
        self,
        owner: Address,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        return await self.context.multiplexer.observe(
            self.balance_key(owner), on_next, on_error
        )

    async def allowance(
        self,
        owner: Address,
        spender: Address,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        return await self.context.multiplexer.observe(
            self.allowance_key(owner, spender), on_next, on_error
        )

    async def read_balance(self, owner: Address) -> int:
        return int(await self.context.read(self.balance_key(owner)))

    async def read_allowance(self, owner: Address, spender: Address) -> int:
        return int(await self.context.read(self.allowance_key(owner, spender)))

    def _request(self, method: str, *args) -> TransactionRequest:
        return TransactionRequest(
            contract=self.address,
            method=method,
            args=args,
            sender=self.context.account,
        )

    def mint(self, beneficiary: Address, amount: int) -> Operation[Receipt]:
        request = self._request("mint", check_address(beneficiary), str(amount))
        return self.context.send_transaction(request, _receipt, description="mint")

    def transfer(self, beneficiary: Address, amount: int) -> Operation[Receipt]:
        request = self._request("transfer", check_address(beneficiary), str(amount))
        return self.context.send_transaction(request, _receipt, description="transfer")

    def approve_for_staking(
        self, amount: int, spender: Optional[Address] = None
    ) -> Operation[Receipt]:
        """Approve the staking contract (GenesisProtocol by default) to spend `amount`."""
        if spender is None:
            spender = self.context.contract_address("GenesisProtocol")
        request = self._request("approve", check_address(spender), str(amount))
        return self.context.send_transaction(request, _receipt, description="approve")

    def __repr__(self) -> str:
        return f"Token({self.address!r})"
