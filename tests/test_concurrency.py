"""
Concurrent movements and transfers on a file-backed SQLite database.

Each worker thread has its own session on the same engine configuration the
application uses. Every worker reads the contended record before any of them
writes, so compare-and-set conflicts are guaranteed rather than left to timing.
"""

import random
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockledger.config import settings
from stockledger.database import Base
from stockledger.models.catalog import Location, Product, Warehouse
from stockledger.models.movement import MovementType
from stockledger.models.user import User
from stockledger.schemas.stock import MovementCreate, TransferCreate
from stockledger.services import journal, ledger_store, movement_engine, transfer_service
from stockledger.services.errors import ConcurrentUpdateConflict, InsufficientStock

WORKERS = 12
MOVES_PER_WORKER = 15
OPENING_STOCK = 40


@pytest.fixture
def file_sessionmaker(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def contended(file_sessionmaker):
    """Product, two locations (only the first stocked) and an acting user."""
    db = file_sessionmaker()
    warehouse = Warehouse(code="WH-C", name="Concurrency")
    db.add(warehouse)
    db.flush()
    shelf = Location(warehouse_id=warehouse.id, code="C-01")
    overflow = Location(warehouse_id=warehouse.id, code="C-02")
    product = Product(sku="C-1", barcode="C-1", name="Contended")
    actor = User(username="worker", password_hash="x", role="user")
    db.add_all([shelf, overflow, product, actor])
    db.commit()
    opening = MovementCreate(product_id=product.id, location_id=shelf.id, type=MovementType.IN, quantity=OPENING_STOCK)
    movement_engine.apply_movement(db, opening, actor.id)
    ids = (product.id, shelf.id, overflow.id, actor.id)
    db.close()
    return ids


def test_concurrent_movements_keep_ledger_consistent(file_sessionmaker, contended, monkeypatch):
    product_id, shelf_id, overflow_id, actor_id = contended
    monkeypatch.setattr(settings, "MOVEMENT_MAX_RETRIES", 50)

    lock = threading.Lock()
    conflicts: list[str] = []
    start_line = threading.Barrier(WORKERS)
    seen = threading.local()

    real_get_or_create = ledger_store.get_or_create
    real_compare_and_set = ledger_store.compare_and_set

    def get_or_create_in_step(db, *args, **kwargs):
        record = real_get_or_create(db, *args, **kwargs)
        if not getattr(seen, "first_read", False):
            seen.first_read = True
            start_line.wait(timeout=30)
        return record

    def counting_compare_and_set(db, product_id, location_id, *args, **kwargs):
        swapped = real_compare_and_set(db, product_id, location_id, *args, **kwargs)
        if not swapped:
            with lock:
                conflicts.append(location_id)
        return swapped

    monkeypatch.setattr(ledger_store, "get_or_create", get_or_create_in_step)
    monkeypatch.setattr(ledger_store, "compare_and_set", counting_compare_and_set)

    external: list[int] = []
    transfers: list[str] = []
    rejected: list[str] = []
    errors: list[BaseException] = []

    def worker(seed: int):
        rng = random.Random(seed)
        db = file_sessionmaker()
        try:
            for n in range(MOVES_PER_WORKER):
                quantity = rng.randint(1, 5)
                action = "in" if n == 0 else rng.choice(["in", "out", "out", "transfer"])
                try:
                    if action == "transfer":
                        source, destination = rng.sample([shelf_id, overflow_id], 2)
                        data = TransferCreate(
                            product_id=product_id,
                            from_location_id=source,
                            to_location_id=destination,
                            quantity=quantity,
                        )
                        result = transfer_service.transfer(db, data, actor_id)
                        with lock:
                            transfers.append(result.reference_number)
                        continue
                    location_id = shelf_id if n == 0 else rng.choice([shelf_id, overflow_id])
                    data = MovementCreate(
                        product_id=product_id, location_id=location_id, type=MovementType(action), quantity=quantity
                    )
                    movement = movement_engine.apply_movement(db, data, actor_id)
                except (InsufficientStock, ConcurrentUpdateConflict) as e:
                    with lock:
                        rejected.append(e.code)
                    continue
                with lock:
                    external.append(movement.delta)
        except BaseException as e:
            with lock:
                errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(external) + len(transfers) + len(rejected) == WORKERS * MOVES_PER_WORKER
    assert conflicts, "workers read the same quantity, at least one compare-and-set must lose"

    check = file_sessionmaker()
    try:
        shelf = ledger_store.get_stock_record(check, product_id, shelf_id)
        overflow = ledger_store.get_stock_record(check, product_id, overflow_id)
        shelf_history = journal.movements_for_pair(check, product_id, shelf_id)
        overflow_history = journal.movements_for_pair(check, product_id, overflow_id) if overflow else []
    finally:
        check.close()

    on_hand = shelf.quantity + (overflow.quantity if overflow else 0)
    assert on_hand == OPENING_STOCK + sum(external) >= 0
    assert journal.replay_quantity(shelf_history) == shelf.quantity
    if overflow:
        assert journal.replay_quantity(overflow_history) == overflow.quantity
    assert all(m.new_quantity >= 0 for m in shelf_history + overflow_history)

    # both legs of every committed transfer, and nothing from rolled-back ones
    legs = sorted(m.reference_number for m in shelf_history + overflow_history if m.type == MovementType.TRANSFER)
    assert legs == sorted(f"{ref}-{side}" for ref in transfers for side in ("OUT", "IN"))
