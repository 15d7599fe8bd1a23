# api/analytics.py - Social growth analytics and goal progress (pandas)
import math
import logging
from datetime import datetime

import pandas as pd

from config import SOCIAL_PLATFORMS

logger = logging.getLogger(__name__)

ENGAGEMENT_WINDOW_DAYS = 30
ATTENTION_PROGRESS = 70
ATTENTION_DAYS = 30


def period_start(period_months, today=None):
    """First date (YYYY-MM-DD) inside an analytics window of ``period_months``"""
    today = pd.Timestamp(today or datetime.now().date())
    return (today - pd.DateOffset(months=period_months)).strftime('%Y-%m-%d')


def _frame(records):
    df = pd.DataFrame(records, columns=[
        'id', 'network_id', 'record_date', 'followers', 'average_likes', 'average_comments',
        'sales_from_platform'
    ])
    if df.empty:
        return df
    df['record_date'] = pd.to_datetime(df['record_date'])
    for column in ('followers', 'average_likes', 'average_comments', 'sales_from_platform'):
        df[column] = pd.to_numeric(df[column], errors='coerce').fillna(0).astype(int)
    return df.sort_values(['record_date', 'id'])


def growth_analytics(networks, records, active_goals=0):
    """Summary of the growth records already restricted to the analytics window.

    Follower totals use each network's most recent record rather than a sum of
    every snapshot; the monthly trend does the same per month.
    """
    df = _frame(records)

    latest = {}
    sales = {}
    growth_trend = []
    if not df.empty:
        latest = df.groupby('network_id')['followers'].last().to_dict()
        sales = df.groupby('network_id')['sales_from_platform'].sum().to_dict()

        df['month'] = df['record_date'].dt.strftime('%Y-%m')
        per_network = df.groupby(['month', 'network_id']).agg(
            followers=('followers', 'last'),
            sales=('sales_from_platform', 'sum')
        )
        monthly = per_network.groupby(level='month').sum().sort_index()
        growth_trend = [
            {'month': month, 'followers': int(row['followers']), 'sales': int(row['sales'])}
            for month, row in monthly.iterrows()
        ]

    platforms = []
    platform_specific = {platform: 0 for platform in SOCIAL_PLATFORMS}
    for network in networks:
        followers = int(latest.get(network['id'], 0))
        platforms.append({
            'network_id': network['id'],
            'platform': network['platform'],
            'username': network['username'],
            'followers': followers,
            'sales': int(sales.get(network['id'], 0))
        })
        if network['platform'] in platform_specific:
            platform_specific[network['platform']] += followers
    platforms.sort(key=lambda item: item['followers'], reverse=True)

    monthly_growth = 0
    if len(growth_trend) >= 2:
        previous = growth_trend[-2]['followers']
        current = growth_trend[-1]['followers']
        if previous:
            monthly_growth = round((current - previous) / previous * 100, 2)

    return {
        'total_networks': len(networks),
        'total_followers': sum(item['followers'] for item in platforms),
        'total_sales': int(sum(sales.values())),
        'active_goals': active_goals,
        'monthly_growth': monthly_growth,
        'platforms': platforms,
        'platform_specific': platform_specific,
        'growth_trend': growth_trend
    }


def goal_current_value(goal_type, records, now=None):
    """Current value of a goal from its network's growth records"""
    df = _frame(records)
    if df.empty:
        return 0
    now = pd.Timestamp(now or datetime.now())

    if goal_type == 'followers':
        return int(df['followers'].iloc[-1])
    if goal_type == 'sales':
        year_start = pd.Timestamp(year=now.year, month=1, day=1)
        return int(df.loc[df['record_date'] >= year_start, 'sales_from_platform'].sum())
    if goal_type == 'engagement':
        window = df[df['record_date'] >= now.normalize() - pd.Timedelta(days=ENGAGEMENT_WINDOW_DAYS)]
        if window.empty:
            return 0
        return int(round(window['average_likes'].mean() + window['average_comments'].mean()))

    logger.warning(f"⚠️ Unknown goal type: {goal_type}")
    return 0


def goal_progress(goal, current_value, now=None):
    now = now or datetime.now()
    deadline = datetime.strptime(str(goal['deadline'])[:10], '%Y-%m-%d')
    days_remaining = math.ceil((deadline - now).total_seconds() / 86400)
    progress = round(min(current_value / goal['target_value'] * 100, 100), 2)

    return dict(
        goal,
        current_value=current_value,
        progress=progress,
        days_remaining=days_remaining,
        needs_attention=progress < ATTENTION_PROGRESS and 0 < days_remaining <= ATTENTION_DAYS
    )
