"""
Hashcash-style proof of work.

A solution is a counter ``c >= 0`` such that
``SHA256(prefix || nonce || str(c))`` has at least ``difficulty`` leading zero
bits. The client solves with this module and the server verifies with it, so
both sides apply exactly the same predicate to exactly the same bytes.
"""

import asyncio
import hashlib
import re
from dataclasses import dataclass

BATCH_SIZE = 1000
MAX_DIFFICULTY = 256
MAX_SOLUTION_DIGITS = 20
MAX_SOLUTION = 10**MAX_SOLUTION_DIGITS

_DECIMAL = re.compile(r"[0-9]+")


@dataclass(frozen=True, slots=True)
class PowChallenge:
    prefix: str
    nonce: str
    difficulty: int
    # Set by the issuer; the solver ignores them.
    expires_at: int | None = None
    stamp: str | None = None


def pow_digest(prefix: str, nonce: str, counter: int) -> bytes:
    """Hash the exact UTF-8 bytes of prefix, nonce and decimal counter."""
    preimage = f"{prefix}{nonce}{counter}".encode("utf-8")
    return hashlib.sha256(preimage).digest()


def has_leading_zero_bits(digest: bytes, difficulty: int) -> bool:
    if difficulty < 0 or difficulty > len(digest) * 8:
        return False
    hash_int = int.from_bytes(digest, "big")
    target = 2 ** (len(digest) * 8 - difficulty)
    return hash_int < target


def count_leading_zero_bits(digest: bytes) -> int:
    """Number of leading zero bits, most significant bit first."""
    width = len(digest) * 8
    return width - int.from_bytes(digest, "big").bit_length()


def parse_solution(solution) -> int | None:
    """Coerce a wire solution to a counter. Returns None when malformed."""
    if isinstance(solution, bool):
        return None
    if isinstance(solution, int):
        return solution if 0 <= solution < MAX_SOLUTION else None
    if isinstance(solution, str):
        if len(solution) > MAX_SOLUTION_DIGITS or not _DECIMAL.fullmatch(solution):
            return None
        return int(solution)
    return None


def verify(challenge: PowChallenge, solution) -> bool:
    """Check a solution with a single hash. Never raises."""
    if not isinstance(challenge.difficulty, int) or isinstance(challenge.difficulty, bool):
        return False
    if not 0 <= challenge.difficulty <= MAX_DIFFICULTY:
        return False
    if not isinstance(challenge.prefix, str) or not isinstance(challenge.nonce, str):
        return False

    counter = parse_solution(solution)
    # Malformed solutions still cost one hash, like wrong ones.
    digest = pow_digest(challenge.prefix, challenge.nonce, 0 if counter is None else counter)
    return counter is not None and has_leading_zero_bits(digest, challenge.difficulty)


class PowSolver:
    """
    Resumable search state for a single challenge.

    ``advance`` runs at most ``max_iterations`` hashes and returns the solution
    if one was found, otherwise None. The counter is kept between calls, so a
    caller can interleave other work between slices without losing or
    repeating any hashes.
    """

    def __init__(self, challenge: PowChallenge, start: int = 0) -> None:
        if not 0 <= challenge.difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"Difficulty must be between 0 and {MAX_DIFFICULTY}")
        self.challenge = challenge
        self.counter = start
        self.solution: int | None = None
        self._base = f"{challenge.prefix}{challenge.nonce}"
        self._target = 2 ** (MAX_DIFFICULTY - challenge.difficulty)

    @property
    def done(self) -> bool:
        return self.solution is not None

    def advance(self, max_iterations: int = BATCH_SIZE) -> int | None:
        if self.solution is not None:
            return self.solution

        base = self._base
        target = self._target
        counter = self.counter
        for _ in range(max_iterations):
            digest = hashlib.sha256(f"{base}{counter}".encode("utf-8")).digest()
            if int.from_bytes(digest, "big") < target:
                self.solution = counter
                self.counter = counter
                return counter
            counter += 1

        self.counter = counter
        return None


def solve(challenge: PowChallenge, batch_size: int = BATCH_SIZE) -> int:
    """Blocking solve. Iterates in batches of ``batch_size`` until a hit."""
    solver = PowSolver(challenge)
    while True:
        solution = solver.advance(batch_size)
        if solution is not None:
            return solution


async def solve_async(challenge: PowChallenge, batch_size: int = BATCH_SIZE) -> int:
    """
    Solve without monopolising the event loop.

    Yields to the loop after every batch. Cancel the awaiting task to abandon
    the search; nothing is returned and nothing else is touched.
    """
    solver = PowSolver(challenge)
    while True:
        solution = solver.advance(batch_size)
        if solution is not None:
            return solution
        await asyncio.sleep(0)
