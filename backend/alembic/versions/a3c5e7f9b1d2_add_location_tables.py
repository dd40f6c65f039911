"""add location tables

Revision ID: a3c5e7f9b1d2
Revises:
Create Date: 2026-10-17

创建地区四级表：countries / states / cities / postal_codes
- name_key：归一化名称（小写），实现不区分大小写的唯一约束
- 州/省编码全局唯一
- 邮编唯一约束为 (pincode, city_id, area)，area 不允许 NULL
- 上级外键 ON DELETE RESTRICT：有下级时数据库拒绝删除

global_visitors / exhibition_registrations 由访客模块的迁移创建
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3c5e7f9b1d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    # ==================== countries ====================
    op.create_table(
        'countries',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(100), nullable=False, comment='国家名称'),
        sa.Column('name_key', sa.String(100), nullable=False, comment='归一化名称（小写）'),
        sa.Column('code', sa.String(2), nullable=False, comment='ISO 3166-1 alpha-2 代码'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('state_count', sa.Integer(), nullable=False, server_default='0', comment='下级州/省数量'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='被访客引用次数'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_countries_code', 'countries', ['code'], unique=True)
    op.create_index('ix_countries_name_key', 'countries', ['name_key'], unique=True)
    op.create_index('ix_countries_is_active', 'countries', ['is_active'])

    # ==================== states ====================
    op.create_table(
        'states',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('country_id', sa.String(36), nullable=False, comment='所属国家 ID'),
        sa.Column('name', sa.String(100), nullable=False, comment='州/省名称'),
        sa.Column('name_key', sa.String(100), nullable=False, comment='归一化名称（小写）'),
        sa.Column('code', sa.String(10), nullable=False, comment='州/省编码（全局唯一）'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('city_count', sa.Integer(), nullable=False, server_default='0', comment='下级城市数量'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='被访客引用次数'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('country_id', 'name_key', name='uq_states_country_name'),
    )
    op.create_index('ix_states_code', 'states', ['code'], unique=True)
    op.create_index('ix_states_country_active', 'states', ['country_id', 'is_active'])

    # ==================== cities ====================
    op.create_table(
        'cities',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('state_id', sa.String(36), nullable=False, comment='所属州/省 ID'),
        sa.Column('name', sa.String(100), nullable=False, comment='城市名称'),
        sa.Column('name_key', sa.String(100), nullable=False, comment='归一化名称（小写）'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('pincode_count', sa.Integer(), nullable=False, server_default='0', comment='下级邮编数量'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='被访客引用次数'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['state_id'], ['states.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('state_id', 'name_key', name='uq_cities_state_name'),
    )
    op.create_index('ix_cities_state_active', 'cities', ['state_id', 'is_active'])

    # ==================== postal_codes ====================
    op.create_table(
        'postal_codes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('city_id', sa.String(36), nullable=False, comment='所属城市 ID'),
        sa.Column('pincode', sa.String(10), nullable=False, comment='邮编'),
        sa.Column('area', sa.String(200), nullable=False, server_default='', comment='区域名称'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='被访客引用次数 + 查询次数'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['city_id'], ['cities.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('pincode', 'city_id', 'area', name='uq_postal_codes_pincode_city_area'),
    )
    op.create_index('ix_postal_codes_pincode_active', 'postal_codes', ['pincode', 'is_active'])
    op.create_index('ix_postal_codes_city_id', 'postal_codes', ['city_id'])
    op.create_index('ix_postal_codes_usage_count', 'postal_codes', ['usage_count'])


def downgrade() -> None:
    op.drop_index('ix_postal_codes_usage_count', table_name='postal_codes')
    op.drop_index('ix_postal_codes_city_id', table_name='postal_codes')
    op.drop_index('ix_postal_codes_pincode_active', table_name='postal_codes')
    op.drop_table('postal_codes')

    op.drop_index('ix_cities_state_active', table_name='cities')
    op.drop_table('cities')

    op.drop_index('ix_states_country_active', table_name='states')
    op.drop_index('ix_states_code', table_name='states')
    op.drop_table('states')

    op.drop_index('ix_countries_is_active', table_name='countries')
    op.drop_index('ix_countries_name_key', table_name='countries')
    op.drop_index('ix_countries_code', table_name='countries')
    op.drop_table('countries')
