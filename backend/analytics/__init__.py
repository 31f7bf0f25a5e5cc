"""
analytics — Forecasting logic for the gas-sensor backend.

Sub-packages
------------
    analytics.forecasting   Scaler, windowing, LSTM lifecycle, rollout,
                            variation injection and the PredictionService.
    analytics.metrics       Hold-out backtest (MAE / RMSE).
"""
