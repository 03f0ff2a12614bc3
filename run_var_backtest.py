#!/usr/bin/env python
"""
Rolling GARCH VaR pipeline.
Coordinates the mean model, rolling GARCH forecasts, VaR thresholds and backtests.
"""
import sys
from pathlib import Path
import logging
from datetime import datetime
import argparse
import time
import traceback
from typing import Dict, Optional

import numpy as np
import pandas as pd
import psutil

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from garch.config import GarchConfig
from garch.data_prep import read_series, prices_to_returns, validate_returns
from garch.mean_model import ARMAMeanModel, ConstantMeanModel
from garch.forecaster import RollingForecaster
from garch.var import garch_var_series, delta_normal_var_series, threshold_values
from garch.backtest import backtest, exception_flags, christoffersen_test


class StepTimer:
    """Tracks duration and memory of pipeline steps"""
    def __init__(self):
        self.start_time = time.time()
        self.last_checkpoint = self.start_time
        self.checkpoints = {}

    def checkpoint(self, name: str):
        """Record timing for a checkpoint"""
        now = time.time()
        self.checkpoints[name] = {
            'duration': now - self.last_checkpoint,
            'memory': psutil.Process().memory_info().rss / 1024 / 1024  # MB
        }
        self.last_checkpoint = now

    def report(self) -> str:
        total_time = time.time() - self.start_time
        report = ["Performance Report:", "-----------------"]
        for name, stats in self.checkpoints.items():
            report.append(f"{name}:")
            report.append(f"  Duration: {stats['duration']:.2f} seconds")
            report.append(f"  Memory: {stats['memory']:.2f} MB")
        report.append("-----------------")
        report.append(f"Total Time: {total_time:.2f} seconds")
        return "\n".join(report)


def setup_logging(output_dir: Path) -> logging.Logger:
    """
    Configure logging with both file and console handlers

    Parameters:
    -----------
    output_dir : Path
        Directory for log file

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"var_backtest_{timestamp}.log"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(message)s'))

    # Repeated calls replace handlers instead of stacking them
    for name in ("garch", "var_backtest"):
        named = logging.getLogger(name)
        for handler in list(named.handlers):
            named.removeHandler(handler)
            handler.close()
        named.setLevel(logging.INFO)
        named.addHandler(file_handler)
        named.addHandler(console_handler)

    return logging.getLogger("var_backtest")


def run_analysis(returns, config: GarchConfig, output_dir: Optional[Path],
                 logger: logging.Logger, ar_order: int = 1,
                 timer: Optional[StepTimer] = None) -> Dict:
    """Run the VaR pipeline on a return series and optionally save CSV outputs"""
    logger.info("Starting VaR pipeline...")
    returns = validate_returns(returns, min_observations=config.window_size + 1)

    if ar_order > 0:
        mean_model = ARMAMeanModel(returns, order=(ar_order, 0))
    else:
        mean_model = ConstantMeanModel(returns)
    if timer:
        timer.checkpoint('mean_model')

    forecaster = RollingForecaster(config)
    forecasts = forecaster.roll(mean_model.residuals, returns)
    if timer:
        timer.checkpoint('rolling_forecast')

    level = config.confidence_level
    indices = forecasts.time_indices
    realized = returns[indices]

    garch_thresholds = garch_var_series(forecasts, mean_model.mean_forecast, level)
    normal_thresholds = delta_normal_var_series(indices, mean_model.mean_forecast,
                                                returns[:config.window_size], level)

    results = {
        'forecasts': forecasts,
        'garch_var': garch_thresholds,
        'delta_normal_var': normal_thresholds,
        'backtests': {},
        'independence': {}
    }
    for name, thresholds in [('garch', garch_thresholds), ('delta_normal', normal_thresholds)]:
        values = threshold_values(thresholds)
        results['backtests'][name] = backtest(realized, values, level,
                                              confidence=config.backtest_confidence)
        results['independence'][name] = christoffersen_test(exception_flags(realized, values))
    if timer:
        timer.checkpoint('backtest')

    if output_dir is not None:
        save_results(results, realized, output_dir, logger)

    for name, result in results['backtests'].items():
        logger.info(
            f"{name}: {result.exceptions}/{result.total} exceptions, "
            f"bounds [{result.lower_bound}, {result.upper_bound}] -> {result.verdict}"
        )
    return results


def save_results(results: Dict, realized: np.ndarray, output_dir: Path,
                 logger: logging.Logger):
    output_dir.mkdir(parents=True, exist_ok=True)

    frame = results['forecasts'].to_dataframe()
    frame['garch_var'] = threshold_values(results['garch_var'])
    frame['delta_normal_var'] = threshold_values(results['delta_normal_var'])
    frame['garch_exception'] = realized < frame['garch_var'].values
    frame['delta_normal_exception'] = realized < frame['delta_normal_var'].values
    frame.to_csv(output_dir / "forecasts.csv")

    summary = pd.DataFrame([
        {'model': name, **result.to_dict(),
         'christoffersen_lr': results['independence'][name]['lr_ind'],
         'christoffersen_pvalue': results['independence'][name]['p_value']}
        for name, result in results['backtests'].items()
    ])
    summary.to_csv(output_dir / "backtest_summary.csv", index=False)
    logger.info(f"Saved results to {output_dir}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Rolling GARCH(1,1) VaR backtest")
    parser.add_argument('input', type=Path, help="CSV file with prices or returns")
    parser.add_argument('--column', default=None, help="Column to read")
    parser.add_argument('--prices', action='store_true', help="Input holds prices, not returns")
    parser.add_argument('--output-dir', type=Path, default=Path('results'))
    parser.add_argument('--ar-order', type=int, default=1, help="AR order of the mean model, 0 for constant")
    parser.add_argument('--window-size', type=int, default=500)
    parser.add_argument('--refit-every', type=int, default=20)
    parser.add_argument('--window-mode', choices=['moving', 'expanding'], default='moving')
    parser.add_argument('--distribution', choices=['normal', 'student_t'], default='student_t')
    parser.add_argument('--level', type=float, default=0.05)
    parser.add_argument('--failure-policy', choices=['strict', 'lenient'], default='strict')
    parser.add_argument('--max-iter', type=int, default=1000)
    parser.add_argument('--tolerance', type=float, default=1e-8)
    parser.add_argument('--progress', action='store_true')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point with configuration and setup"""
    args = parse_args(argv)
    logger = setup_logging(args.output_dir)
    timer = StepTimer()

    try:
        config = GarchConfig(
            window_size=args.window_size,
            refit_every=args.refit_every,
            window_mode=args.window_mode,
            distribution_kind=args.distribution,
            confidence_level=args.level,
            refit_failure_policy=args.failure_policy,
            optimizer_max_iter=args.max_iter,
            optimizer_tolerance=args.tolerance,
            show_progress=args.progress
        )

        series = read_series(args.input, args.column)
        returns = prices_to_returns(series) if args.prices else series
        timer.checkpoint('load_data')

        run_analysis(returns.values, config, args.output_dir, logger,
                     ar_order=args.ar_order, timer=timer)
        logger.info(timer.report())
        logger.info("Pipeline completed successfully")

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


if __name__ == '__main__':
    main()
