#!/usr/bin/env python3
import sys
import os
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from reconciliation_engine import ReconciliationEngine
from models import Contract, PaymentRecord
from period_windows import month_window

CONTRACT_TYPES = ['eor', 'peo', 'milestones']

# Generate test data
contracts = [Contract(
    id=f'contract_{i}',
    worker_name=f'Worker {i}',
    role_title='Engineer',
    contract_type=CONTRACT_TYPES[i % 3],
) for i in range(10000)]
current_payments = [PaymentRecord(
    contract_id=c.id,
    amount='1,250.00',
    currency='USD',
) for c in contracts]
previous_payments = [PaymentRecord(
    contract_id=c.id,
    amount='1,000.00',
    currency='USD',
) for c in contracts[:-500]]  # 500 new workers

# Performance test
start_time = time.time()
engine = ReconciliationEngine(provider=None)
report = engine.reconcile(
    contracts,
    current_payments,
    previous_payments,
    month_window(2025, 2),
    month_window(2025, 1),
)
duration = time.time() - start_time

new_workers = sum(
    1 for category in report.categories
    for change in category.comparison.per_worker_changes if change.is_new
)
print(f'Compared 10,000 workers in {duration:.2f} seconds')
assert duration < 30, f'Performance test failed: {duration:.2f}s > 30s'
assert new_workers == 500, f'Expected 500 new workers, got {new_workers}'
print('Performance test passed')
