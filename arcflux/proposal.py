"""
ArcFlux Proposals
=================

Typed proposal state and the write operations of a proposal's voting machine.

Proposal Variants
-----------------

The ledger index reports a proposal with one optional sub-record per scheme
(`contributionReward`, `genericScheme`, `schemeRegistrar`). The variant is
decided once, when the raw record is ingested, and carried as an explicit
tagged union:

- `ContributionReward`: rewards paid to a beneficiary
- `GenericScheme`: an arbitrary contract call
- `SchemeRegistrar`: register, edit or remove a scheme (`kind` tells which)

Stake Deltas
------------

`ProposalState` carries how much must be staked to change the proposal's
stage (see `arcflux.thresholds`). The numbers are signed; a negative value
means the proposal is already past the threshold.

Write Operations
----------------

Every write returns an `Operation`. Reverts are classified by reading the
proposal back from its voting machine (and, for stakes, the staker's token
balance and allowance):

- `vote()`: no `VoteProposal` event means no vote was cast; the result is None
- `stake()`: a missing `Stake` event is a `MissingResultMarker` error
- `execute()`: succeeds even if nothing observable happened
- `claim_rewards()`: redeems through the Redeemer contract
- `Proposal.create()`: stores title/description/url on IPFS first if given
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence, Union

from .classify import RevertClassifier, callbacks_missing, proposer_missing
from .endpoints import Receipt, TransactionRequest
from .errors import InvalidOptionsError, MissingResultMarker, UnknownProposalTypeError
from .keys import NULL_ADDRESS, Address, check_address
from .operation import Operation
from .records import Stake, Vote
from .thresholds import ThresholdInputs, decode_threshold, stake_deltas
from .types import ExecutionState, ProposalOutcome, ProposalStage

if TYPE_CHECKING:
    from .context import Arc


class ProposalType(Enum):
    CONTRIBUTION_REWARD = "ContributionReward"
    GENERIC_SCHEME = "GenericScheme"
    SCHEME_REGISTRAR_ADD = "SchemeRegistrarAdd"
    SCHEME_REGISTRAR_EDIT = "SchemeRegistrarEdit"
    SCHEME_REGISTRAR_REMOVE = "SchemeRegistrarRemove"


class SchemeRegistrarKind(Enum):
    ADD = "add"
    EDIT = "edit"
    REMOVE = "remove"


# ============================================================================
# VARIANTS
# ============================================================================


@dataclass(frozen=True)
class ContributionReward:
    beneficiary: Address
    eth_reward: int
    external_token: Address
    external_token_reward: int
    native_token_reward: int
    periods: int
    period_length: int
    reputation_reward: int

    @property
    def type(self) -> ProposalType:
        return ProposalType.CONTRIBUTION_REWARD


@dataclass(frozen=True)
class GenericScheme:
    id: str
    contract_to_call: Address
    call_data: str
    executed: bool
    return_value: Optional[str]

    @property
    def type(self) -> ProposalType:
        return ProposalType.GENERIC_SCHEME


@dataclass(frozen=True)
class SchemeRegistrar:
    kind: SchemeRegistrarKind
    id: str
    scheme_to_register: Optional[Address]
    scheme_to_register_params_hash: Optional[str]
    scheme_to_register_permission: Optional[str]
    scheme_to_remove: Optional[Address]
    decision: Optional[int]
    scheme_registered: bool
    scheme_removed: bool

    @property
    def type(self) -> ProposalType:
        return {
            SchemeRegistrarKind.ADD: ProposalType.SCHEME_REGISTRAR_ADD,
            SchemeRegistrarKind.EDIT: ProposalType.SCHEME_REGISTRAR_EDIT,
            SchemeRegistrarKind.REMOVE: ProposalType.SCHEME_REGISTRAR_REMOVE,
        }[self.kind]


ProposalDetails = Union[ContributionReward, GenericScheme, SchemeRegistrar]


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value)


def parse_details(record: Mapping[str, Any]) -> ProposalDetails:
    """Pick the proposal variant from the sub-record present in `record`."""
    cr = record.get("contributionReward")
    if cr:
        return ContributionReward(
            beneficiary=cr.get("beneficiary"),
            eth_reward=_int(cr.get("ethReward")),
            external_token=cr.get("externalToken"),
            external_token_reward=_int(cr.get("externalTokenReward")),
            native_token_reward=_int(cr.get("nativeTokenReward")),
            periods=_int(cr.get("periods")),
            period_length=_int(cr.get("periodLength")),
            reputation_reward=_int(cr.get("reputationReward")),
        )

    gs = record.get("genericScheme")
    if gs:
        return GenericScheme(
            id=gs.get("id"),
            contract_to_call=gs.get("contractToCall"),
            call_data=gs.get("callData"),
            executed=bool(gs.get("executed")),
            return_value=gs.get("returnValue"),
        )

    sr = record.get("schemeRegistrar")
    if sr:
        to_register = sr.get("schemeToRegister")
        if to_register:
            registered = {
                str(s.get("address", "")).lower()
                for s in (record.get("dao") or {}).get("schemes") or ()
            }
            kind = (
                SchemeRegistrarKind.EDIT
                if to_register.lower() in registered
                else SchemeRegistrarKind.ADD
            )
        elif sr.get("schemeToRemove"):
            kind = SchemeRegistrarKind.REMOVE
        else:
            raise UnknownProposalTypeError(
                "schemeRegistrar proposal without a scheme to register or to remove"
            )
        decision = sr.get("decision")
        return SchemeRegistrar(
            kind=kind,
            id=sr.get("id"),
            scheme_to_register=to_register,
            scheme_to_register_params_hash=sr.get("schemeToRegisterParamsHash"),
            scheme_to_register_permission=sr.get("schemeToRegisterPermission"),
            scheme_to_remove=sr.get("schemeToRemove"),
            decision=None if decision is None else int(decision),
            scheme_registered=bool(sr.get("schemeRegistered")),
            scheme_removed=bool(sr.get("schemeRemoved")),
        )

    raise UnknownProposalTypeError(f"Unknown proposal type for proposal {record.get('id')!r}")


# ============================================================================
# STATE
# ============================================================================


@dataclass(frozen=True)
class ProposalState:
    id: str
    dao: Address
    proposer: Address
    details: ProposalDetails
    stage: ProposalStage
    execution_state: ExecutionState
    winning_outcome: ProposalOutcome
    stakes_for: int
    stakes_against: int
    threshold_fixed: int
    upstake_needed_to_preboost: int
    downstake_needed_to_queue: int
    votes_for: int
    votes_against: int
    votes_count: int
    voting_machine: Optional[Address] = None
    scheme_address: Optional[Address] = None
    created_at: int = 0
    executed_at: int = 0
    boosted_at: int = 0
    pre_boosted_at: int = 0
    expires_in_queue_at: int = 0
    confidence_threshold: int = 0
    title: Optional[str] = None
    description: Optional[str] = None
    description_hash: Optional[str] = None
    url: Optional[str] = None
    accounts_with_unclaimed_rewards: Sequence[Address] = field(default_factory=tuple)

    @property
    def type(self) -> ProposalType:
        return self.details.type

    @property
    def threshold(self) -> Fraction:
        return decode_threshold(self.threshold_fixed)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ProposalState":
        """Build the typed state from a raw index record."""
        details = parse_details(record)
        stage = ProposalStage.parse(record["stage"])
        queue = record.get("gpQueue") or {}
        threshold_fixed = _int(queue.get("threshold"))
        stakes_for = _int(record.get("stakesFor"))
        stakes_against = _int(record.get("stakesAgainst"))
        deltas = stake_deltas(
            stage, ThresholdInputs(stakes_for, stakes_against, threshold_fixed)
        )
        dao = record.get("dao") or {}
        scheme = record.get("scheme") or {}
        execution_state = record.get("executionState")
        winning_outcome = record.get("winningOutcome")
        return cls(
            id=record["id"],
            dao=dao.get("id"),
            proposer=record.get("proposer"),
            details=details,
            stage=stage,
            execution_state=(
                ExecutionState.parse(execution_state)
                if execution_state is not None
                else ExecutionState.NONE
            ),
            winning_outcome=(
                ProposalOutcome.parse(winning_outcome)
                if winning_outcome is not None
                else ProposalOutcome.NONE
            ),
            stakes_for=stakes_for,
            stakes_against=stakes_against,
            threshold_fixed=threshold_fixed,
            upstake_needed_to_preboost=deltas.upstake_needed_to_preboost,
            downstake_needed_to_queue=deltas.downstake_needed_to_queue,
            votes_for=_int(record.get("votesFor")),
            votes_against=_int(record.get("votesAgainst")),
            votes_count=len(record.get("votes") or ()),
            voting_machine=queue.get("votingMachine"),
            scheme_address=scheme.get("address"),
            created_at=_int(record.get("createdAt")),
            executed_at=_int(record.get("executedAt")),
            boosted_at=_int(record.get("boostedAt")),
            pre_boosted_at=_int(record.get("preBoostedAt")),
            expires_in_queue_at=_int(record.get("expiresInQueueAt")),
            confidence_threshold=_int(record.get("confidenceThreshold")),
            title=record.get("title"),
            description=record.get("description"),
            description_hash=record.get("descriptionHash"),
            url=record.get("url"),
            accounts_with_unclaimed_rewards=tuple(
                record.get("accountsWithUnclaimedRewards") or ()
            ),
        )


# ============================================================================
# CREATION
# ============================================================================


@dataclass
class ProposalCreateOptions:
    type: ProposalType
    dao: Optional[Address] = None
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    description_hash: Optional[str] = None
    # ContributionReward
    beneficiary: Optional[Address] = None
    reputation_reward: int = 0
    native_token_reward: int = 0
    eth_reward: int = 0
    external_token_reward: int = 0
    external_token_address: Optional[Address] = None
    period_length: int = 0
    periods: int = 1
    # GenericScheme
    call_data: Optional[str] = None
    value: Optional[int] = None
    # SchemeRegistrar
    scheme: Optional[Address] = None
    parameters_hash: Optional[str] = None
    permissions: Optional[str] = None

    @property
    def ipfs_data(self) -> Optional[dict]:
        if not (self.title or self.url or self.description):
            return None
        return {"description": self.description, "title": self.title, "url": self.url}


_CREATION_EVENTS = {
    ProposalType.CONTRIBUTION_REWARD: "NewContributionProposal",
    ProposalType.GENERIC_SCHEME: "NewCallProposal",
    ProposalType.SCHEME_REGISTRAR_ADD: "NewSchemeProposal",
    ProposalType.SCHEME_REGISTRAR_EDIT: "NewSchemeProposal",
    ProposalType.SCHEME_REGISTRAR_REMOVE: "RemoveSchemeProposal",
}


def _validate(options: ProposalCreateOptions) -> None:
    def missing(name: str) -> InvalidOptionsError:
        return InvalidOptionsError(
            f'Missing argument "{name}" for {options.type.value} in Proposal.create()'
        )

    if not options.dao:
        raise InvalidOptionsError('Proposal.create() options must include an address for "dao"')
    if options.ipfs_data is not None and options.description_hash:
        raise InvalidOptionsError(
            "Proposal.create() takes a description_hash, or values for title, url and description; not both"
        )
    if options.type is ProposalType.CONTRIBUTION_REWARD:
        if not options.beneficiary:
            raise missing("beneficiary")
    elif options.type is ProposalType.GENERIC_SCHEME:
        if not options.call_data:
            raise missing("call_data")
        if options.value is None:
            raise missing("value")
    elif options.type in (ProposalType.SCHEME_REGISTRAR_ADD, ProposalType.SCHEME_REGISTRAR_EDIT):
        for name in ("scheme", "parameters_hash", "permissions"):
            if not getattr(options, name):
                raise missing(name)
    elif options.type is ProposalType.SCHEME_REGISTRAR_REMOVE:
        if not options.scheme:
            raise missing("scheme")


def _creation_request(
    options: ProposalCreateOptions, context: "Arc", description_hash: str
) -> TransactionRequest:
    dao = check_address(options.dao)
    kind = options.type
    if kind is ProposalType.CONTRIBUTION_REWARD:
        contract = context.contract_address("ContributionReward")
        method = "proposeContributionReward"
        args = (
            dao,
            description_hash,
            str(options.reputation_reward),
            [
                str(options.native_token_reward),
                str(options.eth_reward),
                str(options.external_token_reward),
                options.period_length,
                options.periods,
            ],
            options.external_token_address or NULL_ADDRESS,
            check_address(options.beneficiary),
        )
    elif kind is ProposalType.GENERIC_SCHEME:
        contract = context.contract_address("GenericScheme")
        method = "proposeCall"
        args = (dao, options.call_data, options.value, description_hash)
    elif kind is ProposalType.SCHEME_REGISTRAR_REMOVE:
        contract = context.contract_address("SchemeRegistrar")
        method = "proposeToRemoveScheme"
        args = (dao, check_address(options.scheme), description_hash)
    else:
        contract = context.contract_address("SchemeRegistrar")
        method = "proposeScheme"
        args = (
            dao,
            check_address(options.scheme),
            options.parameters_hash,
            options.permissions,
            description_hash,
        )
    return TransactionRequest(contract, method, args, sender=context.account)


# ============================================================================
# PROPOSAL
# ============================================================================


class Proposal:
    """A proposal on a DAO, identified by its id in its voting machine."""

    def __init__(
        self, id: str, dao: Address, voting_machine: Address, context: "Arc"
    ):
        self.id = id
        self.dao = check_address(dao)
        self.voting_machine = check_address(voting_machine) if voting_machine else None
        self.context = context

    @classmethod
    def create(cls, options: ProposalCreateOptions, context: "Arc") -> Operation["Proposal"]:
        """
        Create a new proposal.

        Options are validated before anything is sent; the IPFS upload, if
        any, happens after the operation reports Sending.
        """
        _validate(options)
        event_name = _CREATION_EVENTS[options.type]
        ipfs_data = options.ipfs_data

        async def build() -> TransactionRequest:
            description_hash = options.description_hash or ""
            if ipfs_data is not None:
                payload = json.dumps(ipfs_data).encode("utf-8")
                description_hash = await context.save_ipfs_data(payload)
            return _creation_request(options, context, description_hash)

        def map_receipt(receipt: Receipt) -> "Proposal":
            event = receipt.event(event_name)
            if event is None:
                raise MissingResultMarker(event_name, receipt.events)
            return cls(event["_proposalId"], options.dao, event["_intVoteInterface"], context)

        return context.send_transaction(build, map_receipt, description="create proposal")

    def _voting_machine(self) -> Address:
        if not self.voting_machine:
            raise InvalidOptionsError(f"No voting machine address known for proposal {self.id}")
        return self.voting_machine

    def _request(self, contract: Address, method: str, *args) -> TransactionRequest:
        return TransactionRequest(contract, method, args, sender=self.context.account)

    async def voting_machine_entry(self) -> Optional[Mapping[str, Any]]:
        """The proposal as stored by its voting machine, None if unknown."""
        return await self.context.read_entity(self._voting_machine(), self.id)

    def _classifier(self, is_missing=proposer_missing, amount: Optional[int] = None):
        balance = allowance = None
        account = self.context.account
        if amount is not None and account:
            token = self.context.gen_token()
            voting_machine = self._voting_machine()

            async def balance():
                return await token.read_balance(account)

            async def allowance():
                return await token.read_allowance(account, voting_machine)

        return RevertClassifier(
            subject=f"proposal {self.id}",
            entity=self.voting_machine_entry,
            is_missing=is_missing,
            balance=balance,
            allowance=allowance,
            amount=amount,
        )

    def vote(self, outcome: ProposalOutcome, amount: int = 0) -> Operation[Optional[Vote]]:
        """
        Vote on this proposal.

        With `amount` 0 the voting machine uses all of the voter's reputation.
        """
        request = self._request(
            self._voting_machine(), "vote", self.id, outcome.value, str(amount), NULL_ADDRESS
        )

        def map_receipt(receipt: Receipt) -> Optional[Vote]:
            event = receipt.event("VoteProposal")
            if event is None:
                # no vote was cast
                return None
            return Vote(
                voter=event["_voter"],
                outcome=outcome,
                amount=int(event["_reputation"]),
                proposal_id=self.id,
                dao=self.dao,
            )

        return self.context.send_transaction(
            request, map_receipt, self._classifier(), description="vote"
        )

    def stake(self, outcome: ProposalOutcome, amount: int) -> Operation[Stake]:
        request = self._request(
            self._voting_machine(), "stake", self.id, outcome.value, str(amount)
        )

        def map_receipt(receipt: Receipt) -> Stake:
            event = receipt.event("Stake")
            if event is None:
                raise MissingResultMarker("Stake", receipt.events)
            return Stake(
                staker=event["_staker"],
                outcome=outcome,
                amount=int(event["_amount"]),
                proposal_id=self.id,
            )

        return self.context.send_transaction(
            request, map_receipt, self._classifier(amount=int(amount)), description="stake"
        )

    def execute(self) -> Operation[Receipt]:
        """
        Call execute() on the voting machine.

        This moves the proposal to its next stage when due and may or may not
        execute what the proposal proposes.
        """
        request = self._request(self._voting_machine(), "execute", self.id)

        def map_receipt(receipt: Receipt) -> Receipt:
            # no events does not mean anything failed
            return receipt

        return self.context.send_transaction(
            request,
            map_receipt,
            self._classifier(is_missing=callbacks_missing),
            description="execute",
        )

    def claim_rewards(self, beneficiary: Optional[Address] = None) -> Operation[bool]:
        """
        Redeem the proposal's rewards through the Redeemer contract.

        Without a beneficiary only the ContributionReward rewards are redeemed.
        """
        request = self._request(
            self.context.contract_address("Redeemer"),
            "redeem",
            self.id,
            self.dao,
            check_address(beneficiary) if beneficiary else NULL_ADDRESS,
        )
        return self.context.send_transaction(
            request, lambda receipt: True, description="claim rewards"
        )

    def __repr__(self) -> str:
        return f"Proposal({self.id!r}, dao={self.dao!r})"
