"""
Tests for Control Settings, Block Specifications and Model Input Validation

Run with: pytest tests/test_config.py -v
"""

import copy

import numpy as np
import pytest

from jmcmc.block_specs import BlockSpec, ProposalType, BLOCK_ORDER, build_block_specs
from jmcmc.settings import SettingSlot, MALA_TARGET_ACCEPT, build_settings_matrix
from jmcmc.error_handling import validate_control, diagnose_sampler_issues
from jmcmc.model_input import build_model_input, alpha_labels, ModelInfo
from jmcmc.mcmc.config import clean_control, gen_rng_keys
from jmcmc.synthetic import simulate_joint_data, bspline_basis


def _inputs(**kwargs):
    sim = simulate_joint_data(n_subjects=12, seed=5, **kwargs)
    return copy.deepcopy(sim)


def _build(sim):
    return build_model_input(sim['model_data'], sim['model_info'],
                             sim['initial_values'], sim['priors'])


# ============================================================================
# CONTROL
# ============================================================================

class TestControl:

    def test_defaults(self):
        control = clean_control({'n_iter': 10, 'n_burnin': 2})
        assert control['mala'] is False
        assert control['rng_seed'] == 42
        assert control['use_double'] is True
        assert control['chunk_size'] == 100
        assert control['block_settings'] == {}

    def test_mala_alias(self):
        control = clean_control({'n_iter': 10, 'n_burnin': 2, 'MALA': True})
        assert control['mala'] is True
        assert 'MALA' not in control

    def test_clean_control_does_not_mutate_input(self):
        raw = {'n_iter': 10, 'n_burnin': 2}
        clean_control(raw)
        assert raw == {'n_iter': 10, 'n_burnin': 2}

    def test_valid_control_passes(self):
        validate_control(clean_control({'n_iter': 10, 'n_burnin': 0}))

    @pytest.mark.parametrize("control, message", [
        ({'n_burnin': 0}, "Missing required control key: 'n_iter'"),
        ({'n_iter': 10}, "Missing required control key: 'n_burnin'"),
        ({'n_iter': 0, 'n_burnin': 0}, "n_iter must be an integer >= 1"),
        ({'n_iter': 10, 'n_burnin': 10}, "n_burnin must be < n_iter"),
        ({'n_iter': 10, 'n_burnin': -1}, "n_burnin must be an integer >= 0"),
        ({'n_iter': 10.5, 'n_burnin': 1}, "n_iter must be an integer"),
        ({'n_iter': 10, 'n_burnin': 1, 'mala': 'yes'}, "mala must be True or False"),
        ({'n_iter': 10, 'n_burnin': 1, 'chunk_size': 0}, "chunk_size must be an integer >= 1"),
        ({'n_iter': 10, 'n_burnin': 1, 'thin': 2}, "Unknown control keys"),
    ])
    def test_invalid_control(self, control, message):
        with pytest.raises(ValueError, match="Invalid MCMC control") as exc_info:
            validate_control(clean_control(control))
        assert message in str(exc_info.value)

    def test_errors_are_aggregated(self):
        with pytest.raises(ValueError) as exc_info:
            validate_control(clean_control({'n_iter': 0, 'n_burnin': -3, 'thin': 2}))
        text = str(exc_info.value)
        assert "n_iter must be" in text
        assert "n_burnin must be" in text
        assert "Unknown control keys" in text

    def test_gen_rng_keys(self):
        assert gen_rng_keys(1).shape == (2,)
        assert gen_rng_keys(1, n_chains=3).shape == (3, 2)


# ============================================================================
# BLOCK SPECS AND SETTINGS
# ============================================================================

class TestBlockSpecs:

    SIZES = {'bs_gammas': 5, 'gammas': 0, 'alphas': 2, 'sds': 2, 'L': 1}

    def test_order_and_proposals(self):
        specs = build_block_specs(self.SIZES)
        assert tuple(s.name for s in specs) == BLOCK_ORDER
        assert [s.proposal_type for s in specs] == [
            ProposalType.RAND_WALK, ProposalType.RAND_WALK, ProposalType.RAND_WALK,
            ProposalType.LOG_NORMAL, ProposalType.RAND_WALK,
        ]
        assert specs[1].is_empty

    def test_mala_keeps_sds_log_normal(self):
        specs = {s.name: s for s in build_block_specs(self.SIZES, mala=True)}
        assert specs['bs_gammas'].proposal_type == ProposalType.MALA
        assert specs['L'].proposal_type == ProposalType.MALA
        assert specs['sds'].proposal_type == ProposalType.LOG_NORMAL

    def test_settings_matrix_targets(self):
        specs = build_block_specs(self.SIZES, mala=True,
                                  block_settings={'alphas': {'init_scale': 0.5}})
        matrix = np.asarray(build_settings_matrix(specs))
        assert matrix.shape == (5, len(SettingSlot))
        assert matrix[0, SettingSlot.TARGET_ACCEPT] == pytest.approx(MALA_TARGET_ACCEPT)
        assert matrix[3, SettingSlot.TARGET_ACCEPT] == pytest.approx(0.45)
        assert matrix[2, SettingSlot.INIT_SCALE] == pytest.approx(0.5)
        assert matrix[0, SettingSlot.ADAPT_START] == pytest.approx(20.0)

    def test_unknown_setting_raises(self):
        specs = build_block_specs(self.SIZES, block_settings={'sds': {'step': 1.0}})
        with pytest.raises(ValueError, match="Unknown setting 'step'"):
            build_settings_matrix(specs)

    def test_unknown_block_raises(self):
        with pytest.raises(ValueError, match="unknown blocks"):
            build_block_specs(self.SIZES, block_settings={'betas': {}})

    def test_blockspec_validation(self):
        with pytest.raises(ValueError, match="Unknown block"):
            BlockSpec(name='betas', size=2)
        with pytest.raises(ValueError, match="labels"):
            BlockSpec(name='sds', size=2, labels=['a'])
        assert BlockSpec(name='sds', size=2).labels == ['sds[0]', 'sds[1]']

    def test_proposal_type_str(self):
        assert str(ProposalType.LOG_NORMAL) == 'Log Normal'


# ============================================================================
# MODEL INPUT
# ============================================================================

class TestModelInput:

    def test_valid_input(self):
        sim = _inputs()
        model_input = _build(sim)
        n_bs = sim['initial_values']['bs_gammas'].size
        assert model_input.block_sizes == {'bs_gammas': n_bs, 'gammas': 2, 'alphas': 2, 'sds': 2, 'L': 1}

    def test_indices_converted_to_zero_based(self):
        sim = _inputs()
        data = _build(sim).data
        np.testing.assert_array_equal(data.id_H, sim['model_data']['id_H'] - 1)
        np.testing.assert_array_equal(data.which_event, sim['model_data']['which_event'] - 1)
        assert data.id_H.min() == 0
        assert data.n_subjects == 12

    def test_which_right_event_order(self):
        data = _build(_inputs()).data
        n_event = data.which_event.size
        np.testing.assert_array_equal(data.which_right_event[:n_event], data.which_event)

    def test_initial_covariance_decomposition(self):
        sim = _inputs()
        iv = _build(sim).initial_values
        D = sim['initial_values']['D']
        np.testing.assert_allclose(iv.sds, np.sqrt(np.diag(D)))
        R = iv.L.T @ iv.L
        np.testing.assert_allclose(np.diag(iv.sds) @ R @ np.diag(iv.sds), D, atol=1e-12)

    def test_alpha_labels(self):
        labels = _build(_inputs()).block_labels()
        assert labels['alphas'] == ['alphas[y1_f1]', 'alphas[y1_f2]']
        assert labels['L'] == ['L[0,1]']

    def test_alpha_labels_without_forms(self):
        info = ModelInfo(FunForms_cpp=(), FunForms_ind=())
        assert alpha_labels([np.zeros((3, 2))], info) == ['alphas[y1_1]', 'alphas[y1_2]']

    def test_device_arrays(self):
        model_input = _build(_inputs())
        arrays = model_input.to_model_arrays()
        assert arrays.Wlong_H.shape == (model_input.data.id_H.size, 2)
        assert arrays.b.shape == (12, 2)
        assert arrays.any_event
        state = model_input.to_chain_state()
        assert state.L.shape == (1,)
        priors = model_input.to_prior_arrays()
        rank = model_input.priors.rank_Tau_bs_gammas
        assert float(priors.post_A_tau_bs_gammas) == pytest.approx(1.0 + 0.5 * rank)

    def test_id_H2_defaults_to_id_H(self):
        sim = _inputs()
        md = sim['model_data']
        md['W0_H2'] = md['W0_H'].copy()
        md['W_H2'] = md['W_H'].copy()
        md['Wlong_H2'] = [m.copy() for m in md['Wlong_H']]
        md['log_Pwk2'] = md['log_Pwk'].copy()
        del md['id_H2']
        data = _build(sim).data
        np.testing.assert_array_equal(data.id_H2, data.id_H)

    def test_rank_computed_when_absent(self):
        sim = _inputs()
        del sim['priors']['rank_Tau_bs_gammas']
        sim['priors']['Tau_bs_gammas'] = np.diag([1.0, 1.0, 0.0] + [1.0] * (sim['initial_values']['bs_gammas'].size - 3))
        model_input = _build(sim)
        assert model_input.priors.rank_Tau_bs_gammas == sim['initial_values']['bs_gammas'].size - 1

    def test_no_event_warning(self, caplog):
        sim = _inputs()
        md = sim['model_data']
        md['which_right'] = np.sort(np.concatenate([md['which_right'], md['which_event']]))
        md['which_event'] = np.zeros(0, dtype=int)
        md['id_h'] = np.zeros(0, dtype=int)
        for name in ('W0_h', 'W_h'):
            md[name] = md[name][:0]
        md['Wlong_h'] = [m[:0] for m in md['Wlong_h']]
        with caplog.at_level('WARNING', logger='jmcmc'):
            _build(sim)
        assert "No exactly observed events" in caplog.text

    def test_H2_matrices_optional_without_interval_subjects(self):
        sim = _inputs(censoring={'event': 0.6, 'right': 0.4})
        md = sim['model_data']
        assert md['which_interval'].size == 0
        for name in ('W_H2', 'W0_H2', 'Wlong_H2', 'id_H2', 'log_Pwk2'):
            md.pop(name, None)
        data = _build(sim).data
        assert data.W_H2.shape == (0, 2)
        assert data.W0_H2.shape == (0, md['W0_H'].shape[1])
        assert data.id_H2.size == 0

    def test_h_matrices_optional_without_events(self):
        sim = _inputs()
        md = sim['model_data']
        md['which_right'] = np.sort(np.concatenate([md['which_right'], md['which_event']]))
        md['which_event'] = np.zeros(0, dtype=int)
        for name in ('W_h', 'W0_h', 'Wlong_h', 'id_h'):
            md.pop(name, None)
        data = _build(sim).data
        assert data.W_h.shape == (0, 2)
        assert data.Wlong_h[0].shape == (0, 2)


class TestModelInputErrors:
    """Every structural problem is reported before sampling starts."""

    def _assert_invalid(self, sim, message):
        with pytest.raises(ValueError, match="Invalid model input") as exc_info:
            _build(sim)
        assert message in str(exc_info.value)

    def test_row_mismatch(self):
        sim = _inputs()
        sim['model_data']['W0_H'] = sim['model_data']['W0_H'][:-1]
        self._assert_invalid(sim, "W0_H has")

    def test_quadrature_weight_mismatch(self):
        sim = _inputs()
        sim['model_data']['log_Pwk'] = sim['model_data']['log_Pwk'][:-2]
        self._assert_invalid(sim, "log_Pwk has")

    def test_wlong_row_mismatch(self):
        sim = _inputs()
        sim['model_data']['Wlong_h'] = [m[:-1] for m in sim['model_data']['Wlong_h']]
        self._assert_invalid(sim, "Wlong_h[0] has")

    def test_alphas_length_mismatch(self):
        sim = _inputs()
        sim['initial_values']['alphas'] = np.zeros(3)
        sim['priors']['mean_alphas'] = np.zeros(3)
        sim['priors']['Tau_alphas'] = np.eye(3)
        self._assert_invalid(sim, "alphas has length 3")

    def test_zero_based_index_rejected(self):
        sim = _inputs()
        sim['model_data']['which_event'] = sim['model_data']['which_event'] - 1
        self._assert_invalid(sim, "which_event must be 1-based")

    def test_overlapping_censoring_sets(self):
        sim = _inputs()
        md = sim['model_data']
        md['which_right'] = np.sort(np.concatenate([md['which_right'], md['which_event'][:1]]))
        self._assert_invalid(sim, "censoring index sets overlap")

    def test_out_of_range_subject(self):
        sim = _inputs()
        sim['model_data']['which_right'] = np.append(sim['model_data']['which_right'], 99)
        self._assert_invalid(sim, "which_right has indices outside 1..12")

    def test_non_contiguous_id_H(self):
        sim = _inputs()
        md = sim['model_data']
        md['id_H'] = md['id_H'][::-1].copy()
        self._assert_invalid(sim, "id_H must be sorted and contiguous")

    def test_duplicated_id_h(self):
        sim = _inputs()
        md = sim['model_data']
        md['id_h'] = md['id_h'].copy()
        md['id_h'][-1] = md['id_h'][0]
        self._assert_invalid(sim, "id_h must be strictly increasing")

    def test_non_symmetric_precision(self):
        sim = _inputs()
        Tau = sim['priors']['Tau_alphas'].copy()
        Tau[0, 1] = 1.0
        sim['priors']['Tau_alphas'] = Tau
        self._assert_invalid(sim, "Tau_alphas is not symmetric")

    def test_zero_rank_precision(self):
        sim = _inputs()
        sim['priors']['Tau_gammas'] = np.zeros((2, 2))
        self._assert_invalid(sim, "Tau_gammas has rank 0")

    def test_indefinite_precision(self):
        sim = _inputs()
        sim['priors']['Tau_gammas'] = np.diag([1.0, -1.0])
        self._assert_invalid(sim, "Tau_gammas is not positive semi-definite")

    def test_non_positive_definite_D(self):
        sim = _inputs()
        sim['initial_values']['D'] = np.array([[1.0, 2.0], [2.0, 1.0]])
        self._assert_invalid(sim, "D is not positive-definite")

    def test_invalid_hyperparameters(self):
        sim = _inputs()
        sim['priors']['A_tau_bs_gammas'] = -1.0
        sim['priors']['prior_D_L_etaLKJ'] = 0.0
        self._assert_invalid(sim, "A_tau_bs_gammas must be positive")

    def test_missing_required_key(self):
        sim = _inputs()
        del sim['model_data']['W0_H']
        self._assert_invalid(sim, "missing required key 'W0_H'")

    def test_missing_W_bar(self):
        sim = _inputs()
        del sim['model_data']['W_bar']
        self._assert_invalid(sim, "missing required key 'W_bar'")

    def test_missing_W_h_with_events(self):
        sim = _inputs()
        del sim['model_data']['W_h']
        self._assert_invalid(sim, "W_h is required when id_h is not empty")

    def test_interval_subjects_need_H2_rows(self):
        sim = _inputs(censoring={'event': 0.5, 'interval': 0.5})
        md = sim['model_data']
        md['id_H2'] = md['id_H2'][md['id_H2'] != md['which_interval'][0]]
        self._assert_invalid(sim, "id_H2")

    def test_all_errors_reported_together(self):
        sim = _inputs()
        sim['model_data']['W0_H'] = sim['model_data']['W0_H'][:-1]
        sim['priors']['Tau_gammas'] = np.zeros((2, 2))
        sim['initial_values']['D'] = np.array([[1.0, 2.0], [2.0, 1.0]])
        with pytest.raises(ValueError) as exc_info:
            _build(sim)
        text = str(exc_info.value)
        assert "W0_H has" in text
        assert "Tau_gammas has rank 0" in text
        assert "D is not positive-definite" in text


# ============================================================================
# SIMULATION HELPERS AND POST-RUN DIAGNOSIS
# ============================================================================

def test_bspline_partition_of_unity():
    x = np.linspace(0.0, 4.0, 37)
    B = bspline_basis(x, [1.0, 2.5], (0.0, 4.0))
    assert B.shape == (37, 6)
    np.testing.assert_allclose(B.sum(axis=1), 1.0, atol=1e-12)
    assert np.all(B >= 0)
    # Clamped knots: the end functions interpolate the boundaries
    assert B[0, 0] == pytest.approx(1.0)
    assert B[-1, -1] == pytest.approx(1.0)
    assert bspline_basis(np.zeros(0), [1.0, 2.5], (0.0, 4.0)).shape == (0, 6)


def test_simulated_censoring_mix():
    sim = simulate_joint_data(n_subjects=40, seed=2,
                              censoring={'event': 0.4, 'right': 0.2, 'left': 0.2, 'interval': 0.2})
    md = sim['model_data']
    assert md['which_event'][0] == 1
    assert md['which_interval'].size > 0
    assert md['W0_H2'].shape[0] == md['id_H2'].size == md['log_Pwk2'].size


def test_diagnose_sampler_issues():
    results = {
        'mcmc': {'bs_gammas': np.array([[0.0, np.nan], [1.0, 2.0]])},
        'acc_rate': {'bs_gammas': np.array([[0.0, 1.0], [0.0, 0.0]])},
    }
    diagnostics = diagnose_sampler_issues(results)
    assert any("NaN or Inf" in issue for issue in diagnostics['issues'])
    assert any("never accepted" in w for w in diagnostics['warnings'])
    assert "Retained iterations: 2" in diagnostics['info']
